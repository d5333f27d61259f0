"""
Flask CLI commands for operations.

Commands:
- flask init-db: Create all tables
- flask low-stock: List materials at or below their minimum level
- flask recompute-batch BATCH_ID: Re-derive a batch's status from its shipments
- flask seed-demo: Load a small demo catalogue
"""

import click
from decimal import Decimal
from sqlalchemy.exc import SQLAlchemyError
from vialworks.database import create_all, get_session
from vialworks.models import (
    ApplicationType, MaterialCategory, Product, RawMaterial, UnitOfMeasurement,
    VialType, VialTypeMaterial,
)
from vialworks.services import inventory_service, shipment_service


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create database tables."""
        create_all()
        click.echo(click.style('Database tables created.', fg='green'))

    @app.cli.command('low-stock')
    def low_stock_command():
        """Report materials at or below their minimum stock level."""
        materials = inventory_service.get_low_stock_materials(get_session())
        if not materials:
            click.echo(click.style('All materials above minimum stock.', fg='green'))
            return
        for material in materials:
            click.echo(click.style(
                f'{material.name}: {material.current_stock} {material.unit} '
                f'(min {material.min_stock_level})',
                fg='yellow'
            ))
        click.echo(f'{len(materials)} material(s) low on stock.')

    @app.cli.command('recompute-batch')
    @click.argument('batch_id', type=int)
    def recompute_batch_command(batch_id):
        """Recompute status and shipped units of a batch."""
        result = shipment_service.update_batch_status(get_session(), batch_id)
        if not result.ok:
            click.echo(click.style(f'Could not recompute batch {batch_id}: {result.error_message}', fg='red'))
            raise SystemExit(1)
        update = result.value
        click.echo(click.style(
            f'Batch {batch_id}: status={update.status} shipped_units={update.shipped_units} '
            f'in_progress={update.units_in_progress}',
            fg='green'
        ))

    @app.cli.command('seed-demo')
    def seed_demo_command():
        """Load demo units, materials, a vial type and its packaging BOM."""
        session = get_session()
        if session.query(VialType).count():
            click.echo(click.style('Demo data already present, nothing to do.', fg='yellow'))
            return

        try:
            each = UnitOfMeasurement(name='Each', abbreviation='ea', category='count', conversion_to_base=1)
            session.add(each)
            for name in ('Vials', 'Caps', 'Labels', 'Packaging'):
                session.add(MaterialCategory(name=name, active=True))

            vial = RawMaterial(name='10ml amber vial', category='Vials', unit='ea',
                               current_stock=Decimal('1000'), min_stock_level=Decimal('200'))
            cap = RawMaterial(name='Crimp cap', category='Caps', unit='ea',
                              current_stock=Decimal('1000'), min_stock_level=Decimal('200'))
            label = RawMaterial(name='Label roll', category='Labels', unit='roll',
                                current_stock=Decimal('5'), min_stock_level=Decimal('1'),
                                qty_per_container=Decimal('500'))
            carton = RawMaterial(name='Shipping carton', category='Packaging', unit='ea',
                                 current_stock=Decimal('50'), min_stock_level=Decimal('10'))
            session.add_all([vial, cap, label, carton])

            vial_type = VialType(name='10ml Amber', size_ml=Decimal('10'))
            session.add(vial_type)
            session.flush()

            session.add_all([
                VialTypeMaterial(vial_type_id=vial_type.id, raw_material_id=vial.id,
                                 quantity_per_unit=1, application_type=ApplicationType.PER_UNIT.value),
                VialTypeMaterial(vial_type_id=vial_type.id, raw_material_id=cap.id,
                                 quantity_per_unit=1, application_type=ApplicationType.PER_UNIT.value),
                VialTypeMaterial(vial_type_id=vial_type.id, raw_material_id=label.id,
                                 quantity_per_unit=1, application_type=ApplicationType.PER_UNIT.value),
                VialTypeMaterial(vial_type_id=vial_type.id, raw_material_id=carton.id,
                                 quantity_per_unit=1, application_type=ApplicationType.PER_BOX.value),
            ])
            session.add(Product(name='Sample Serum 10ml', sale_type='individual', price=Decimal('24.99'),
                                is_active=True, is_published=True))
            session.commit()
            click.echo(click.style('Demo data loaded.', fg='green', bold=True))

        except SQLAlchemyError as e:
            session.rollback()
            click.echo(click.style(f'Error loading demo data: {e}', fg='red'))
            raise SystemExit(1)
