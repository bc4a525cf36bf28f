# Overview: Flask CLI command groups for bootstrap and seeding.

# backend/orderdesk/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--company "Company Name"] [--code DEFAULT]
#   Idempotent bootstrap: creates tables, a default company, global header aliases and an admin user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Company management (MULTI-TENANT):
# - python -m flask companies list
# - python -m flask companies create --name "Acme" --code ACME
#
# Users:
# - python -m flask users create --company-id 1 --username online1 --email o1@acme.kr --password "Password123" --grade 온라인
#
# Malls:
# - python -m flask malls list --company-id 1
# - python -m flask malls create --company-id 1 --name "쿠팡" [--code CP]
#
# Seeding:
# - python -m flask aliases seed [--company-id 1]
#   Insert the default header aliases (global when no company is given).
# - python -m flask products import --company-id 1 catalog.xlsx
#   Create or update catalog entries by code.
# - python -m flask templates import --company-id 1 --name "CJ외주 발주서" sample.xlsx
#   Save a sample workbook as an export template.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Company, User
from .models.auth import GRADE_ADMIN
from .services import alias_service, catalog_service, mall_service, template_service
from .services.auth_service import create_user, PasswordValidationError
from .services.spreadsheet import read_table
from .validation import OrderDeskError


def _company_or_fail(company_id):
    company = db.session.query(Company).filter_by(id=company_id).first()
    if not company:
        click.echo(f"FAIL Company ID {company_id} not found")
    return company


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--company', 'company_name', default='Default Company', help='Company name')
@click.option('--code', 'company_code', default='DEFAULT', help='Company code')
@with_appcontext
def init_system(company_name, company_code):
    """
    Initialize OrderDesk: tables, default company, header aliases and an admin user.

    Default credentials: admin / Password123 (change in production).
    """
    click.echo("START Initializing OrderDesk...")
    db.create_all()

    company = db.session.query(Company).filter_by(code=company_code).first()
    if not company:
        company = Company(name=company_name, code=company_code, is_active=True)
        db.session.add(company)
        db.session.commit()
        click.echo(f"PASS Created company: {company.name} (ID: {company.id}, Code: {company.code})")
    else:
        click.echo(f"PASS Using existing company: {company.name} (ID: {company.id})")

    added = alias_service.seed_default_aliases(None)
    click.echo(f"PASS Seeded {added} global header aliases")

    existing = db.session.query(User).filter_by(company_id=company.id, username="admin").first()
    if existing:
        click.echo("WARN  User 'admin' already exists, skipping...")
    else:
        create_user(
            username="admin",
            email="admin@orderdesk.local",
            password="Password123",
            company_id=company.id,
            grade=GRADE_ADMIN,
        )
        click.echo("PASS Created user: admin (admin@orderdesk.local) / Password123")

    click.echo("DONE OrderDesk initialized")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.echo("FAIL Refusing to reset without --yes")
        return
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@click.group('companies')
def companies_group():
    """Company (tenant) management."""


@companies_group.command('list')
@with_appcontext
def list_companies_cli():
    companies = db.session.query(Company).order_by(Company.id).all()
    if not companies:
        click.echo("No companies found")
        return
    for company in companies:
        status = "active" if company.is_active else "inactive"
        click.echo(f"{company.id}\t{company.code}\t{company.name}\t{status}")


@companies_group.command('create')
@click.option('--name', required=True, help='Company name')
@click.option('--code', required=True, help='Short code (unique)')
@with_appcontext
def create_company_cli(name, code):
    """Create a new company (tenant)."""
    existing = db.session.query(Company).filter_by(code=code).first()
    if existing:
        click.echo(f"FAIL Company with code '{code}' already exists")
        return

    company = Company(name=name, code=code, is_active=True)
    db.session.add(company)
    db.session.commit()
    click.echo(f"PASS Created company: {company.name} (ID: {company.id}, Code: {company.code})")


@click.group('users')
def users_group():
    """User management."""


@users_group.command('create')
@click.option('--company-id', type=int, required=True, help='Company ID')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--grade', default=None, help='User grade (온라인 for marketplace uploaders)')
@click.option('--name', default=None, help='Display name')
@with_appcontext
def create_user_cli(company_id, username, email, password, grade, name):
    """
    Create a user inside a company.

    Password must be 8+ characters with at least one letter and one digit.
    """
    try:
        user = create_user(
            username=username,
            email=email,
            password=password,
            company_id=company_id,
            grade=grade,
            name=name,
        )
        click.echo(f"PASS Created user: {user.username} (ID: {user.id}, grade: {user.grade})")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {e}")
    except ValueError as e:
        click.echo(f"FAIL {e}")


@click.group('malls')
def malls_group():
    """Mall (sales channel) management."""


@malls_group.command('list')
@click.option('--company-id', type=int, required=True, help='Company ID')
@with_appcontext
def list_malls_cli(company_id):
    malls = mall_service.list_malls(company_id)
    if not malls:
        click.echo("No malls found")
        return
    for mall in malls:
        click.echo(f"{mall.id}\t{mall.name}\t{mall.code or ''}")


@malls_group.command('create')
@click.option('--company-id', type=int, required=True, help='Company ID')
@click.option('--name', required=True, help='Mall name as it appears in uploads')
@click.option('--code', default=None, help='Optional mall code')
@with_appcontext
def create_mall_cli(company_id, name, code):
    if not _company_or_fail(company_id):
        return
    try:
        mall = mall_service.create_mall(company_id, name, code)
        click.echo(f"PASS Created mall: {mall.name} (ID: {mall.id})")
    except OrderDeskError as e:
        click.echo(f"FAIL {e}")


@click.group('aliases')
def aliases_group():
    """Header alias table."""


@aliases_group.command('seed')
@click.option('--company-id', type=int, default=None, help='Company ID (global aliases when omitted)')
@with_appcontext
def seed_aliases_cli(company_id):
    if company_id is not None and not _company_or_fail(company_id):
        return
    added = alias_service.seed_default_aliases(company_id)
    scope = f"company {company_id}" if company_id is not None else "global scope"
    click.echo(f"PASS Seeded {added} header aliases for {scope}")


@click.group('products')
def products_group():
    """Catalog seeding."""


@products_group.command('import')
@click.option('--company-id', type=int, required=True, help='Company ID')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@with_appcontext
def import_products_cli(company_id, path):
    """Create or update products from an xlsx catalog (code and name columns required)."""
    if not _company_or_fail(company_id):
        return
    try:
        with open(path, "rb") as fh:
            table = read_table(fh)
        created, updated = catalog_service.import_products(company_id, table)
        click.echo(f"PASS Catalog imported: {created} created, {updated} updated")
    except OrderDeskError as e:
        click.echo(f"FAIL {e}")


@click.group('templates')
def templates_group():
    """Export templates."""


@templates_group.command('import')
@click.option('--company-id', type=int, required=True, help='Company ID')
@click.option('--name', required=True, help='Template name (e.g. "CJ외주 발주서")')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@with_appcontext
def import_template_cli(company_id, name, path):
    """Save a sample workbook as an export template; its styles are reused on export."""
    if not _company_or_fail(company_id):
        return
    try:
        with open(path, "rb") as fh:
            data = template_service.template_data_from_workbook(fh.read())
        template = template_service.create_template(company_id, name, data)
        click.echo(f"PASS Created template: {template.name} (ID: {template.id}, {len(data['headers'])} columns)")
    except OrderDeskError as e:
        click.echo(f"FAIL {e}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(companies_group)
    app.cli.add_command(users_group)
    app.cli.add_command(malls_group)
    app.cli.add_command(aliases_group)
    app.cli.add_command(products_group)
    app.cli.add_command(templates_group)
