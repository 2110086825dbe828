"""Entry point for running the application with uvicorn."""

import uvicorn

from erp_workflow.config import settings


def main() -> None:
    """Run the application."""
    uvicorn.run(
        "erp_workflow.api.app:create_app",
        factory=True,
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )


if __name__ == "__main__":
    main()
