"""
Tests for application configuration defaults.
"""

from sqlalchemy.engine import make_url

from gst_billing.config import DEFAULT_DATABASE_URL


def test_default_database_url_uses_psycopg2():
    """The default URL names the psycopg2 driver."""
    url = make_url(DEFAULT_DATABASE_URL)
    assert url.get_backend_name() == "postgresql"
    assert url.get_driver_name() == "psycopg2"

