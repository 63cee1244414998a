"""BloodLink: blood donation matching between donors and receivers."""

__version__ = '1.0.0'

from bloodlink.app import create_app  # noqa: E402,F401
