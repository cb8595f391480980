"""WSGI entry point."""
from dlc_review.logging_utils import configure_logging
from dlc_review.web import create_app

configure_logging()
app = create_app()

if __name__ == "__main__":
    app.run()
