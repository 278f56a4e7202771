"""Smoke test for application assembly."""


def test_import_app():
    """Test that we can import the app module."""
    from vilo.main import create_app
    app = create_app()
    assert app is not None
    assert app.title == "Vilo API"
