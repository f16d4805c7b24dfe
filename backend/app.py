# module backend.app
from backend.app_setup.factory import configure_logging, create_app

configure_logging()

# App globale
app = create_app()
