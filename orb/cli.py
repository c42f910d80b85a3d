from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Optional

import typer
import uvicorn

from orb.core.actions import ActionPlanRegistry
from orb.core.config import Settings, get_settings
from orb.core.interpreter import ResponseInterpreter
from orb.core.message_log import MessageLog

cli = typer.Typer(name="orb", help="Orb conversation core")
config_cli = typer.Typer(help="Configuration")

cli.add_typer(config_cli, name="config")


@cli.command()
def serve() -> None:
    """Start the FastAPI event server."""
    settings = get_settings()
    uvicorn.run("orb.main:app", host=settings.host, port=settings.port)


@cli.command()
def interpret(path: Optional[str] = typer.Argument(None, help="Reply file; stdin when omitted")) -> None:
    """Interpret an assistant reply and print its visual and actions as JSON."""
    if path:
        source = Path(path)
        if not source.is_file():
            typer.echo(f"File not found: {source}", err=True)
            raise typer.Exit(code=1)
        text = source.read_text(encoding="utf-8")
    else:
        text = sys.stdin.read()
    interpreter = ResponseInterpreter(MessageLog(), ActionPlanRegistry())
    reply = interpreter.interpret(text)
    typer.echo(json.dumps(reply.to_dict(), ensure_ascii=False, indent=2))


@config_cli.command("print")
def config_print() -> None:
    s = Settings()
    typer.echo(json.dumps(s.model_dump(exclude={"llm_api_key"}), ensure_ascii=False, default=str))


if __name__ == "__main__":
    cli()
