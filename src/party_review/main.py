"""CLI entrypoint for party-review."""

from __future__ import annotations

from pathlib import Path

import typer
import uvicorn

app = typer.Typer(
    name="party-review",
    help="Multi-agent discussion of code review findings",
    invoke_without_command=True,
)


@app.callback(invoke_without_command=True)
def start(
    port: int = typer.Option(3000, help="Server port"),
    project_dir: Path = typer.Option(
        None, "--project-dir", help="Project root holding agent persona files (default: cwd)",
    ),
) -> None:
    """Start the Party Review server."""
    from party_review.server import create_app

    fastapi_app = create_app(project_dir=project_dir)

    typer.echo(f"Starting Party Review on http://localhost:{port}")

    log_config = uvicorn.config.LOGGING_CONFIG
    log_config["formatters"]["default"]["fmt"] = "%(asctime)s %(levelprefix)s %(message)s"
    log_config["formatters"]["default"]["datefmt"] = "%Y-%m-%d %H:%M:%S"
    log_config["formatters"]["access"]["fmt"] = '%(asctime)s %(levelprefix)s %(client_addr)s - "%(request_line)s" %(status_code)s'
    log_config["formatters"]["access"]["datefmt"] = "%Y-%m-%d %H:%M:%S"
    # Route engine logs through uvicorn's default handler
    log_config["loggers"]["party_review"] = {"handlers": ["default"], "level": "INFO", "propagate": False}

    config = uvicorn.Config(
        fastapi_app,
        host="0.0.0.0",
        port=port,
        log_level="info",
        log_config=log_config,
        timeout_graceful_shutdown=1,
    )
    server = uvicorn.Server(config)
    server.run()


if __name__ == "__main__":
    app()
