# Overview: All permission modules organized by group.
# Each module is defined as: (code, name, description, group)

from .categories import ModuleGroup


# -- CATALOG --

CATALOG_MODULES = [
    ("products", "Products", "Product catalog and stock quantities", ModuleGroup.CATALOG),
    ("categories", "Categories", "Product categories", ModuleGroup.CATALOG),
    ("units", "Units", "Units of measure and conversion factors", ModuleGroup.CATALOG),
]


# -- SALES --

SALES_MODULES = [
    ("pos", "Point of Sale", "Register screen and checkout at the counter", ModuleGroup.SALES),
    ("sales", "Sales", "Sales documents", ModuleGroup.SALES),
    ("online-orders", "Online Orders", "Storefront orders, fulfilment and payment", ModuleGroup.SALES),
]


# -- PARTNERS --

PARTNER_MODULES = [
    ("customers", "Customers", "Customer records and debt", ModuleGroup.PARTNERS),
    ("suppliers", "Suppliers", "Supplier records and debt", ModuleGroup.PARTNERS),
    ("purchases", "Purchases", "Purchase orders and goods receipt", ModuleGroup.PARTNERS),
]


# -- FINANCE --

FINANCE_MODULES = [
    ("cash-flow", "Cash Flow", "Cash transactions and shifts", ModuleGroup.FINANCE),
]


# -- REPORTS --

REPORT_MODULES = [
    ("dashboard", "Dashboard", "Overview dashboard", ModuleGroup.REPORTS),
    ("reports_shifts", "Shift Report", "Shift summaries", ModuleGroup.REPORTS),
    ("reports_income_statement", "Income Statement", "Income statement", ModuleGroup.REPORTS),
    ("reports_profit", "Profit Report", "Profit by product and period", ModuleGroup.REPORTS),
    ("reports_debt", "Customer Debt Report", "Customer debt balances", ModuleGroup.REPORTS),
    ("reports_supplier_debt", "Supplier Debt Report", "Supplier debt balances", ModuleGroup.REPORTS),
    ("reports_transactions", "Transactions Report", "Transaction history", ModuleGroup.REPORTS),
    ("reports_revenue", "Revenue Report", "Revenue by period", ModuleGroup.REPORTS),
    ("reports_sold_products", "Sold Products Report", "Quantities sold per product", ModuleGroup.REPORTS),
    ("reports_inventory", "Inventory Report", "Stock on hand and movements", ModuleGroup.REPORTS),
]


# -- ADMINISTRATION --

ADMINISTRATION_MODULES = [
    ("stores", "Stores", "Store management", ModuleGroup.ADMINISTRATION),
    ("users", "Users", "User accounts, roles and store assignments", ModuleGroup.ADMINISTRATION),
    ("settings", "Settings", "Tenant settings", ModuleGroup.ADMINISTRATION),
]


MODULE_DEFINITIONS = (
    CATALOG_MODULES
    + SALES_MODULES
    + PARTNER_MODULES
    + FINANCE_MODULES
    + REPORT_MODULES
    + ADMINISTRATION_MODULES
)
