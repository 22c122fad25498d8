from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated, NoReturn

import httpx
import typer
from botocore.exceptions import BotoCoreError, ClientError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.text import Text

from .cache import ResponseCache
from .config import InputConfig, OutputConfig, RunConfig, ScreenshotConfig, Settings
from .errors import CacheError, ConfigurationError, LmError
from .images import image_from_file, image_from_url, split_csv
from .prompts import PromptLibrary
from .providers import build_provider
from .query import DEFAULT_SCHEMA_NAME, ImageBlock, JSONSchema
from .registry import ModelRegistry, default_registry
from .screenshot import ScreenshotTaker, SiteScreenshotter
from .service import QueryRequest, QueryService, RunSummary
from .stdin import read_stdin

logger = logging.getLogger(__name__)

console = Console(stderr=True, highlight=False)
app = typer.Typer(
    help="Send stdin, optionally with images or a prompt template, to a language model.",
    add_completion=False,
)


def entrypoint() -> None:
    app()


@app.command()
def run(
    model: Annotated[str | None, typer.Option(help="Model to use (default: LM_DEFAULT_MODEL or gpt-4o).")] = None,
    list_models: Annotated[bool, typer.Option("--list-models", help="List all available models and exit.")] = False,
    list_prompts: Annotated[
        bool, typer.Option("--list-prompts", help="List bundled prompt templates and exit.")
    ] = False,
    timeout: Annotated[
        float | None, typer.Option(help="Seconds to wait for stdin (default: LM_STDIN_TIMEOUT or 60).", min=0.0)
    ] = None,
    prompt: Annotated[str, typer.Option(help="Text appended to stdin.")] = "",
    image_urls: Annotated[
        str | None, typer.Option("--image-urls", help='One or more image URLs: "url1,url2".')
    ] = None,
    image_files: Annotated[
        str | None, typer.Option("--image-files", help='One or more image files: "a.png,b.jpg".')
    ] = None,
    screenshot: Annotated[
        bool, typer.Option(help="Screenshot every monitor and send the images along.")
    ] = False,
    monitor: Annotated[int | None, typer.Option(help="Only screenshot this monitor (1-based).")] = None,
    sites: Annotated[str | None, typer.Option(help='Screenshot these web pages: "url1,url2".')] = None,
    cache: Annotated[bool, typer.Option(help="Use the persistent response cache.")] = False,
    template: Annotated[str | None, typer.Option(help="Render stdin through a bundled prompt template.")] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Ask the model for a JSON object.")] = False,
    schema: Annotated[
        Path | None,
        typer.Option(help="JSON Schema file the response must conform to.", exists=True, dir_okay=False),
    ] = None,
    fallback: Annotated[
        bool, typer.Option(help="Switch to a capable model when the selected one cannot serve the query.")
    ] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Log progress and print a run summary.")] = False,
) -> None:
    try:
        settings = Settings.from_env()
    except ConfigurationError as exc:
        _fail(exc)
    _configure_logging(verbose or settings.debug)
    registry = default_registry()

    if list_models:
        typer.echo(registry.model_info_json())
        raise typer.Exit()
    library = PromptLibrary()
    if list_prompts:
        typer.echo(library.listing_json())
        raise typer.Exit()

    run_cfg = RunConfig(
        model=model,
        input=InputConfig(
            prompt_suffix=prompt,
            image_urls=split_csv(image_urls),
            image_files=[Path(name) for name in split_csv(image_files)],
            sites=split_csv(sites),
            screenshot=screenshot,
            template=template,
        ),
        output=OutputConfig(json_output=json_output, schema_path=schema),
        screenshot=ScreenshotConfig(monitor=monitor),
        timeout=timeout,
        use_cache=cache,
        fallback=fallback,
        verbose=verbose,
    )
    try:
        summary = _run_cli(run_cfg, settings, registry, library)
    except (LmError, httpx.HTTPError, BotoCoreError, ClientError, OSError) as exc:
        _fail(exc)

    typer.echo(summary.response)
    if run_cfg.verbose:
        _print_summary(summary)


def _fail(exc: Exception) -> NoReturn:
    console.print(Text.assemble(("Error: ", "bold red"), str(exc)))
    raise typer.Exit(code=1) from exc


def _run_cli(config: RunConfig, settings: Settings, registry: ModelRegistry, library: PromptLibrary) -> RunSummary:
    prompt_template = library.get(config.input.template) if config.input.template else None
    model_name = config.model or (prompt_template.model if prompt_template else settings.default_model)
    model = registry.lookup(model_name)
    logger.debug("Using model %s (%s)", model.name, model.provider)

    images = _collect_images(config)
    text = read_stdin(config.timeout if config.timeout is not None else settings.stdin_timeout)
    if config.input.prompt_suffix:
        text += config.input.prompt_suffix

    json_output = config.output.json_output
    schema = _load_schema(config.output.schema_path) if config.output.schema_path else None
    if prompt_template is not None:
        text = library.render(prompt_template, text, config.input.image_urls)
        json_output = json_output or prompt_template.forces_json
        schema = schema or library.schema(prompt_template)

    request = QueryRequest(prompt=text, images=tuple(images), json_output=json_output, schema=schema)
    response_cache = _open_cache(settings) if config.use_cache else None
    try:
        service = QueryService(
            registry,
            settings,
            provider_factory=build_provider,
            cache=response_cache,
            allow_fallback=config.fallback,
        )
        return service.run(model, request)
    finally:
        if response_cache is not None:
            response_cache.close()


def _open_cache(settings: Settings) -> ResponseCache | None:
    try:
        return ResponseCache(settings.cache_path)
    except (CacheError, OSError) as exc:
        logger.warning("Running without the response cache: %s", exc)
        return None


def _collect_images(config: RunConfig) -> list[ImageBlock]:
    images = [image_from_url(url) for url in config.input.image_urls]
    images.extend(image_from_file(path) for path in config.input.image_files)
    if config.input.sites:
        for path in SiteScreenshotter().capture(config.input.sites):
            images.append(image_from_file(path))
    if config.input.screenshot:
        for shot in ScreenshotTaker(config.screenshot).capture():
            images.append(image_from_file(shot.path))
    return images


def _load_schema(path: Path) -> JSONSchema:
    return JSONSchema(name=DEFAULT_SCHEMA_NAME, schema=path.read_bytes(), strict=True)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _print_summary(summary: RunSummary) -> None:
    table = Table(title="lm run", show_edge=False, box=None)
    table.add_column("Field", style="bold cyan")
    table.add_column("Value", overflow="fold")
    table.add_row("Model", summary.model.name)
    table.add_row("Provider", summary.model.provider)
    table.add_row("Cached", "yes" if summary.cached else "no")
    if summary.substituted:
        table.add_row("Requested model", summary.requested_model)
        table.add_row("Substituted because", summary.substitution_reason)
    console.print(table)
