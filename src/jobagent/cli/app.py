from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import typer

from jobagent.core.runtime import Runtime, get_runtime
from jobagent.db.init import init_database
from jobagent.db.session import engine
from jobagent.errors import InvalidRequest, JobAgentError, to_failure
from jobagent.logging_config import configure_logging

app = typer.Typer(help="Job Agent CLI")
analysis_app = typer.Typer(help="Stored posting analyses")
letter_app = typer.Typer(help="Generated cover letters")
postings_app = typer.Typer(help="Stored job postings")

app.add_typer(analysis_app, name="analysis")
app.add_typer(letter_app, name="letter")
app.add_typer(postings_app, name="postings")


def echo_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


def read_json_file(path: Path) -> dict[str, Any]:
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise typer.BadParameter(f"{path} must contain a JSON object")
    return data


def run_with_runtime(action: Callable[[Runtime], Awaitable[Any]]) -> Any:
    """Run one async action against a fully initialised runtime."""
    configure_logging()

    async def _main() -> Any:
        runtime = get_runtime()
        try:
            await init_database()
            return await action(runtime)
        finally:
            await runtime.aclose()
            await engine.dispose()

    try:
        return asyncio.run(_main())
    except JobAgentError as exc:
        echo_json(to_failure(exc))
        raise typer.Exit(code=1) from exc


@app.command("init")
def init_cmd() -> None:
    """Create the data directory and database tables."""
    configure_logging()

    async def _init() -> dict[str, list[str]]:
        try:
            return await init_database(engine)
        finally:
            await engine.dispose()

    result = asyncio.run(_init())
    echo_json({"ok": True, **result})


@app.command("provider")
def provider_cmd() -> None:
    """Show the active AI provider."""

    async def action(runtime: Runtime) -> dict[str, Any]:
        return {
            "success": True,
            "defaultProvider": runtime.selector.active_provider_type(),
            "provider": runtime.selector.provider_info(),
        }

    echo_json(run_with_runtime(action))


@app.command("check")
def check_cmd() -> None:
    """Check that the active provider answers."""

    async def action(runtime: Runtime) -> dict[str, Any]:
        available = await runtime.service.check_availability()
        provider = runtime.selector.active_provider_type()
        return {
            "success": True,
            "provider": provider,
            "available": available,
            "message": f"{provider} API is {'available' if available else 'unavailable'}",
        }

    result = run_with_runtime(action)
    echo_json(result)
    if not result["available"]:
        raise typer.Exit(code=2)


@app.command("save-posting")
def save_posting_cmd(path: Path = typer.Argument(..., exists=True, dir_okay=False)) -> None:
    """Store a posting JSON document so it can be analysed."""
    payload = read_json_file(path)

    async def action(runtime: Runtime) -> dict[str, Any]:
        posting_id = await runtime.service.save_posting(payload)
        return {"success": True, "postingId": posting_id}

    echo_json(run_with_runtime(action))


@app.command("analyze-posting")
def analyze_posting_cmd(
    posting_id: str,
    data: Path | None = typer.Option(
        None, "--data", exists=True, dir_okay=False, help="Posting JSON to store before analysing"
    ),
) -> None:
    """Analyse a posting for toxicity, reusing a stored analysis."""
    posting = read_json_file(data) if data else None

    async def action(runtime: Runtime) -> dict[str, Any]:
        record = await runtime.service.analyze_posting(posting_id, posting)
        return record.to_envelope()

    echo_json(run_with_runtime(action))


@app.command("analyze-resume")
def analyze_resume_cmd(
    path: Path = typer.Argument(..., exists=True, dir_okay=False),
    input_format: str = typer.Option("html", "--format", help="html or text"),
    url: str = typer.Option("", "--url", help="Resume URL, used to derive the resume id"),
) -> None:
    """Extract a structured resume from saved HTML or plain text."""
    if input_format not in {"html", "text"}:
        raise typer.BadParameter("--format must be html or text")
    content = path.read_text(encoding="utf-8")

    async def action(runtime: Runtime) -> dict[str, Any]:
        if input_format == "html":
            analysis = await runtime.service.analyze_resume_html(content, source_url=url or None)
        else:
            analysis = await runtime.service.analyze_resume_text(content, source_url=url or None)
        return {"success": True, "analysis": analysis.model_dump(by_alias=True, mode="json")}

    echo_json(run_with_runtime(action))


@app.command("cover-letter")
def cover_letter_cmd(
    posting: Path = typer.Option(..., "--posting", exists=True, dir_okay=False),
    resume: Path | None = typer.Option(None, "--resume", exists=True, dir_okay=False),
) -> None:
    """Generate a cover letter; without --resume the latest analysed resume is used."""
    posting_data = read_json_file(posting)
    resume_data = read_json_file(resume) if resume else None

    async def action(runtime: Runtime) -> dict[str, Any]:
        resume_payload = resume_data or await runtime.repository.get_latest_resume_analysis()
        if not resume_payload:
            raise InvalidRequest("no resume given and no analysed resume stored; run analyze-resume first")
        result = await runtime.service.generate_cover_letter(resume_payload, posting_data)
        return {"success": True, **result.model_dump(mode="json")}

    echo_json(run_with_runtime(action))


@letter_app.command("show")
def letter_show_cmd(posting_id: str = typer.Option("", "--posting-id")) -> None:
    """Show the latest cover letter, optionally for one posting."""

    async def action(runtime: Runtime) -> dict[str, Any]:
        letter = await runtime.service.get_cover_letter(posting_id or None)
        if letter is None:
            raise InvalidRequest("no cover letter found")
        return {
            "success": True,
            "content": letter.content,
            "postingId": letter.posting_id,
            "generatedAt": letter.generated_at,
        }

    echo_json(run_with_runtime(action))


@analysis_app.command("show")
def analysis_show_cmd(posting_id: str) -> None:
    """Show the latest stored analysis of a posting."""

    async def action(runtime: Runtime) -> dict[str, Any]:
        record = await runtime.service.get_analysis(posting_id)
        if record is None:
            raise InvalidRequest(f"no analysis for posting {posting_id}")
        return record.to_envelope()

    echo_json(run_with_runtime(action))


@analysis_app.command("list")
def analysis_list_cmd() -> None:
    """List the latest analysis of every posting."""

    async def action(runtime: Runtime) -> list[dict[str, Any]]:
        return [record.to_envelope() for record in await runtime.service.list_analyses()]

    echo_json(run_with_runtime(action))


@analysis_app.command("stats")
def analysis_stats_cmd() -> None:
    """Summarise recommendations and toxicity over stored analyses."""

    async def action(runtime: Runtime) -> dict[str, Any]:
        stats = await runtime.service.analysis_stats()
        return stats.model_dump()

    echo_json(run_with_runtime(action))


@postings_app.command("list")
def postings_list_cmd() -> None:
    """List stored postings, most recently saved first."""

    async def action(runtime: Runtime) -> list[dict[str, Any]]:
        return await runtime.service.list_postings()

    echo_json(run_with_runtime(action))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
