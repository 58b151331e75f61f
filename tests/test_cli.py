from quotemaster.models import KitchenDemand, Product, ServiceScope, Supplier, Team, User


def test_seed_demo_is_idempotent(app):
    runner = app.test_cli_runner()
    assert "seeded" in runner.invoke(args=["seed-demo"]).output
    runner.invoke(args=["seed-demo"])

    assert Product.query.count() == 5
    assert Supplier.query.count() == 3
    assert Team.query.count() == 1
    assert ServiceScope.query.count() == 2
    assert KitchenDemand.query.count() == 1


def test_create_admin_resets_password(app):
    runner = app.test_cli_runner()
    runner.invoke(args=["create-admin", "root", "first"])
    runner.invoke(args=["create-admin", "root", "second"])

    user = User.query.filter_by(username="root").one()
    assert user.can_manage()
    assert user.check_password("second")
