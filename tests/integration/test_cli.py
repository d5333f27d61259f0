"""
Tests for the Flask CLI commands.
"""

from vialworks.models import VialType


def test_low_stock_reports_short_materials(app, session, make_material):
    make_material(name='Crimp cap', stock='5', min_stock='10')

    result = app.test_cli_runner().invoke(args=['low-stock'])

    assert result.exit_code == 0
    assert 'Crimp cap' in result.output
    assert '1 material(s) low on stock.' in result.output


def test_low_stock_all_clear(app, session, material):
    result = app.test_cli_runner().invoke(args=['low-stock'])

    assert 'All materials above minimum stock.' in result.output


def test_recompute_unknown_batch(app, session):
    result = app.test_cli_runner().invoke(args=['recompute-batch', '999'])

    assert result.exit_code == 1
    assert 'Could not recompute batch 999' in result.output


def test_seed_demo_is_idempotent(app, session):
    runner = app.test_cli_runner()

    first = runner.invoke(args=['seed-demo'])
    second = runner.invoke(args=['seed-demo'])

    assert 'Demo data loaded.' in first.output
    assert 'already present' in second.output
    assert session.query(VialType).count() == 1
