"""Entry point for running the automation engine with uvicorn."""

from .config import load_config
from .factory import create_app

config = load_config()
app = create_app(config)


def run():
    """Run the API server."""
    import uvicorn
    uvicorn.run("scriptflow.main:app", **config.get_uvicorn_config())


if __name__ == "__main__":
    run()
