# Overview: Flask CLI command groups for bootstrap and inspection.

# backend/retailpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--org "Org Name"] [--org-code CODE]
#   Idempotent bootstrap: creates default org, store and owner account.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Organizations:
# - python -m flask orgs list
# - python -m flask orgs create --name "Acme" --code ACME
# - python -m flask orgs add-store --org-id 1 --name "Branch 2" [--code B2]
# - python -m flask orgs add-online-store --store-id 1 --slug acme --name "Acme Online"
#
# Users:
# - python -m flask users create --org-id 1 --email a@b.c --role store_manager
# - python -m flask users list [--org-id 1]
#
# Permissions:
# - python -m flask perms list [--role salesperson] [--group CATALOG]
# - python -m flask perms check <email> <module> <action> [--store-id 1]

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Organization, Store, User, OnlineStore
from .permissions import (
    ALL_ROLES,
    DEFAULT_ROLE_PERMISSIONS,
    ModuleGroup,
    UserRole,
    get_module_definition,
    get_modules_by_group,
)
from .services.auth_service import create_user, PasswordValidationError
from .services.permission_service import permission_service


# =============================================================================
# SYSTEM COMMANDS
# =============================================================================

@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--org', 'org_name', default='Default Organization', help='Organization name')
@click.option('--org-code', default='DEFAULT', help='Organization code')
@click.option('--owner-email', default='owner@retailpos.local', help='Owner account email')
@click.option('--owner-password', default='Password123!', help='Owner account password')
@with_appcontext
def init_system(org_name, org_code, owner_email, owner_password):
    """
    Initialize the system: organization, default store and an owner account.

    MULTI-TENANT: The organization is the tenant root; the store and the
    owner are created inside it. Safe to re-run.

    SECURITY: Change the owner password immediately in production!
    """
    click.echo("START Initializing RetailPOS...")

    org = db.session.query(Organization).filter_by(code=org_code).first()
    if not org:
        org = Organization(name=org_name, code=org_code, is_active=True)
        db.session.add(org)
        db.session.commit()
        click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")
    else:
        click.echo(f"PASS Using existing organization: {org.name} (ID: {org.id})")

    store = db.session.query(Store).filter_by(org_id=org.id).first()
    if not store:
        store = Store(org_id=org.id, name="Main Store")
        db.session.add(store)
        db.session.commit()
        click.echo(f"PASS Created default store: {store.name} (ID: {store.id})")
    else:
        click.echo(f"PASS Using existing store: {store.name} (ID: {store.id})")

    existing = db.session.query(User).filter_by(org_id=org.id, email=owner_email.strip().lower()).first()
    if existing:
        click.echo(f"WARN  User '{existing.email}' already exists in org, skipping...")
    else:
        try:
            owner = create_user(
                email=owner_email,
                password=owner_password,
                org_id=org.id,
                role=UserRole.OWNER,
                display_name="Owner",
            )
            click.echo(f"PASS Created owner: {owner.email}")
        except PasswordValidationError as e:
            click.echo(f"FAIL Password validation failed: {str(e)}")
            return

    click.echo("\n" + "="*60)
    click.echo("DONE RetailPOS Initialized")
    click.echo("="*60)
    click.echo(f"\nOrganization: {org.name} (ID: {org.id})")
    click.echo(f"Store: {store.name} (ID: {store.id})")
    click.echo("\nSECURITY WARNING: change the owner password in production!\n")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    permission_service.clear_cache()
    click.echo("PASS Database reset. Run 'python -m flask system init' to bootstrap.")


# =============================================================================
# ORGANIZATION MANAGEMENT COMMANDS (MULTI-TENANT)
# =============================================================================

@click.group('orgs')
def orgs_group():
    """Organization (tenant) management commands."""


@orgs_group.command('list')
@with_appcontext
def list_orgs():
    """List all organizations."""
    orgs = db.session.query(Organization).order_by(Organization.id).all()

    if not orgs:
        click.echo("No organizations found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Active':<8} {'Stores':<8} {'Users'}")
    click.echo("="*80)

    for org in orgs:
        store_count = db.session.query(Store).filter_by(org_id=org.id).count()
        user_count = db.session.query(User).filter_by(org_id=org.id).count()
        active_str = "Yes" if org.is_active else "No"

        click.echo(f"{org.id:<5} {org.name:<30} {org.code or '-':<15} {active_str:<8} {store_count:<8} {user_count}")

    click.echo("="*80 + "\n")


@orgs_group.command('create')
@click.option('--name', required=True, help='Organization name')
@click.option('--code', required=True, help='Short code (unique)')
@with_appcontext
def create_org_cli(name, code):
    """Create a new organization (tenant)."""
    if db.session.query(Organization).filter_by(code=code).first():
        click.echo(f"FAIL Organization with code '{code}' already exists")
        return

    org = Organization(name=name, code=code, is_active=True)
    db.session.add(org)
    db.session.commit()

    click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")


@orgs_group.command('add-store')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--name', required=True, help='Store name')
@click.option('--code', help='Store code (unique within org)')
@with_appcontext
def add_store_cli(org_id, name, code):
    """Add a store to an organization."""
    org = db.session.query(Organization).filter_by(id=org_id).first()
    if not org:
        click.echo(f"FAIL Organization ID {org_id} not found")
        return

    if db.session.query(Store).filter_by(org_id=org_id, name=name).first():
        click.echo(f"FAIL Store '{name}' already exists in this organization")
        return

    store = Store(org_id=org_id, name=name, code=code)
    db.session.add(store)
    db.session.commit()

    click.echo(f"PASS Created store: {store.name} (ID: {store.id}) in org '{org.name}'")


@orgs_group.command('add-online-store')
@click.option('--store-id', type=int, required=True, help='Physical store ID')
@click.option('--slug', required=True, help='Public URL slug (globally unique)')
@click.option('--name', required=True, help='Shop name')
@click.option('--contact-email', help='Reply-to address for customer emails')
@with_appcontext
def add_online_store_cli(store_id, slug, name, contact_email):
    """Open an online storefront for a physical store."""
    store = db.session.query(Store).filter_by(id=store_id).first()
    if not store:
        click.echo(f"FAIL Store ID {store_id} not found")
        return

    if db.session.query(OnlineStore).filter_by(slug=slug).first():
        click.echo(f"FAIL Slug '{slug}' is already taken")
        return

    online_store = OnlineStore(store_id=store.id, slug=slug, name=name, contact_email=contact_email)
    db.session.add(online_store)
    db.session.commit()

    click.echo(f"PASS Created online store: {online_store.name} (ID: {online_store.id}) at /{slug}")


# =============================================================================
# USER MANAGEMENT COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--org-id', type=int, help='Organization ID (uses default if not specified)')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(ALL_ROLES), prompt=True, help='Role')
@click.option('--display-name', help='Display name')
@with_appcontext
def create_user_cli(org_id, email, password, role, display_name):
    """
    Create a new user.

    MULTI-TENANT: If --org-id is not provided, uses the first organization.

    Password must be 8+ chars with uppercase, lowercase, digit and
    special character.
    """
    if org_id:
        org = db.session.query(Organization).filter_by(id=org_id).first()
        if not org:
            click.echo(f"FAIL Organization ID {org_id} not found")
            return
    else:
        org = db.session.query(Organization).order_by(Organization.id).first()
        if not org:
            click.echo("FAIL No organization found. Run 'python -m flask system init' first.")
            return

    try:
        user = create_user(
            email=email,
            password=password,
            org_id=org.id,
            role=role,
            display_name=display_name,
        )
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
        return
    except ValueError as e:
        click.echo(f"FAIL Failed to create user: {str(e)}")
        return

    click.echo(f"PASS Created user: {user.email} with role '{user.role}'")
    click.echo(f"     Organization: {org.name} (ID: {org.id})")


@users_group.command('list')
@click.option('--org-id', type=int, help='Filter by organization ID')
@with_appcontext
def list_users(org_id):
    """List users with their role and store assignments."""
    query = db.session.query(User)
    if org_id:
        query = query.filter_by(org_id=org_id)

    users = query.order_by(User.id).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<5} {'Org':<5} {'Email':<35} {'Role':<18} {'Status':<10} {'Stores'}")
    click.echo("="*100)

    for user in users:
        store_ids = sorted(a.store_id for a in user.store_assignments)
        stores_str = ", ".join(str(s) for s in store_ids) if store_ids else "-"
        click.echo(f"{user.id:<5} {user.org_id:<5} {user.email:<35} {user.role:<18} {user.status:<10} {stores_str}")

    click.echo("="*100 + "\n")


# =============================================================================
# PERMISSION COMMANDS
# =============================================================================

_MODULE_GROUPS = [
    ModuleGroup.CATALOG,
    ModuleGroup.SALES,
    ModuleGroup.PARTNERS,
    ModuleGroup.FINANCE,
    ModuleGroup.REPORTS,
    ModuleGroup.ADMINISTRATION,
]


@click.group('perms')
def perms_group():
    """Permission inspection commands."""


@perms_group.command('list')
@click.option('--role', type=click.Choice(ALL_ROLES), help='Show a single role')
@click.option('--group', type=click.Choice(_MODULE_GROUPS), help='Only modules of this group')
def list_permissions_cli(role, group):
    """Show the default module/action map of each role."""
    roles = [role] if role else list(ALL_ROLES)
    group_codes = {m[0] for m in get_modules_by_group(group)} if group else None

    for role_name in roles:
        perms = DEFAULT_ROLE_PERMISSIONS.get(role_name, {})
        if group_codes is not None:
            perms = {m: a for m, a in perms.items() if m in group_codes}
        click.echo(f"\n{'='*80}")
        click.echo(f"Role: {role_name.upper()}")
        click.echo(f"{'='*80}")
        if not perms:
            click.echo("  (no default permissions)")
            continue
        for module in sorted(perms):
            click.echo(f"  {module:<28} {', '.join(perms[module])}")

    click.echo("")


@perms_group.command('check')
@click.argument('email')
@click.argument('module')
@click.argument('action')
@click.option('--org-id', type=int, help='Organization ID when the email exists in several orgs')
@click.option('--store-id', type=int, help='Evaluate with this store\'s overrides')
@with_appcontext
def check_permission_cli(email, module, action, org_id, store_id):
    """Check whether a user may perform ACTION in MODULE."""
    query = db.session.query(User).filter_by(email=email.strip().lower())
    if org_id:
        query = query.filter_by(org_id=org_id)
    user = query.first()

    if not user:
        click.echo(f"FAIL User '{email}' not found")
        return

    definition = get_module_definition(module)
    if definition is None:
        click.echo(f"FAIL Unknown module '{module}'")
        return

    result = permission_service.check_permission(user.id, module, action, store_id=store_id, tenant_id=user.org_id)
    scope = f" at store {store_id}" if store_id else ""

    if result.allowed:
        click.echo(f"PASS User '{user.email}' HAS {module}:{action}{scope} ({definition['name']})")
    else:
        click.echo(f"FAIL User '{user.email}' DOES NOT HAVE {module}:{action}{scope} ({result.reason})")

    effective = permission_service.get_user_permissions(user.id, tenant_id=user.org_id, store_id=store_id)
    click.echo(f"\nUser role: {user.role}")
    click.echo(f"Modules with access: {len(effective)}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(orgs_group)  # Multi-tenant organization management
    app.cli.add_command(users_group)
    app.cli.add_command(perms_group)
