"""aiMate CLI: exercise the safety pipeline, plugins and chat from a terminal."""

from __future__ import annotations

import asyncio

import click
import yaml
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from aimate import __version__
from aimate.config import AimateConfig, load_config, parse_sensitivity
from aimate.errors import AimateError
from aimate.logging_config import setup_logging

console = Console()

_LEVEL_STYLES = {"none": "green", "mild": "cyan", "elevated": "yellow", "critical": "bold red"}


async def _start_manager(config: AimateConfig, backend=None):
    from aimate.plugins.builtin import default_plugin_factories
    from aimate.plugins.manager import PluginManager

    manager = PluginManager()
    await manager.load_plugins(default_plugin_factories(config, backend=backend))
    return manager


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "config_path", default=None, help="Path to config.yaml")
@click.option("--log-level", default=None, help="Override the configured log level")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, log_level: str | None):
    """aiMate: safety-first chat plugin core.

    Checks messages for crisis signals, filters harmful replies, and runs
    chat turns through the plugin pipeline against a LiteLLM proxy.
    """
    try:
        config = load_config(config_path)
    except AimateError as e:
        raise click.ClickException(str(e))
    if log_level:
        config.logging.level = log_level.upper()
    setup_logging(config.logging.level, config.logging.json_format)
    ctx.obj = config


# ── Safety ───────────────────────────────────────────────────────────


@main.command()
@click.argument("text")
@click.option("--region", default=None, help="Region code for crisis resources")
@click.option(
    "--sensitivity",
    default=None,
    type=click.Choice(["Conservative", "Moderate", "Aggressive"], case_sensitive=False),
)
@click.pass_obj
def check(config: AimateConfig, text: str, region: str | None, sensitivity: str | None):
    """Run the safety check on a user message and show what would be sent."""
    from aimate.models.chat import Message
    from aimate.plugins.models import ConversationContext
    from aimate.safety.plugin import MentalHealthSafetyPlugin

    user_settings = {}
    if region:
        user_settings["region"] = region.upper()
    if sensitivity:
        user_settings["sensitivity"] = parse_sensitivity(sensitivity).value

    plugin = MentalHealthSafetyPlugin(config.safety)

    async def run():
        await plugin.initialize()
        return await plugin.on_before_send(
            Message.user(text), ConversationContext("cli", user_settings=user_settings)
        )

    result = asyncio.run(run())
    level = result.metadata.get("distress_level", "none")
    triggers = result.metadata.get("triggers", [])

    console.print("\n[bold blue]aiMate[/] Safety check\n")
    console.print(f"  Distress level: [{_LEVEL_STYLES[level]}]{level.upper()}[/]")
    if triggers:
        console.print(f"  Triggers: {', '.join(triggers)}")

    if not result.proceed:
        console.print(f"  [red]Blocked:[/] {result.cancel_reason}\n")
        console.print(Panel(Markdown(result.modified_message.content), title="Reply shown to user"))
    elif result.modified_message is not None and result.modified_message.content != text:
        console.print("  [yellow]Forwarded with safety guidance[/]\n")
        console.print(Panel(result.modified_message.content, title="Sent to model"))
    else:
        console.print("  [green]Forwarded unchanged[/]")


@main.command(name="scan-response")
@click.argument("text")
def scan_response(text: str):
    """Check an assistant reply for harmful patterns."""
    from aimate.safety.detector import HarmDetector

    analysis = HarmDetector().analyze(text)
    if not analysis.is_harmful:
        console.print("[green]OK[/] No harmful patterns found")
        return
    console.print(f"[red]BLOCK[/] {len(analysis.patterns)} harmful pattern(s):")
    for pattern in analysis.patterns:
        console.print(f"  [red]x[/] {pattern}")


@main.command()
@click.argument("region", required=False)
@click.pass_obj
def resources(config: AimateConfig, region: str | None):
    """Show crisis resources for REGION (default: the configured region)."""
    from aimate.safety.resources import CrisisResourceDatabase

    db = CrisisResourceDatabase(config.safety.region)
    try:
        db.load(config.safety.resources_file or None)
    except (OSError, AimateError) as e:
        raise click.ClickException(str(e))

    res, matched = db.lookup(region or config.safety.region)
    if not matched:
        console.print(f"[yellow]No resources for {region}; showing {res.region}.[/]")
        console.print(f"[dim]Known regions: {', '.join(db.regions)}[/]")

    table = Table(title=f"Crisis Resources: {res.region} (emergency {res.emergency})")
    table.add_column("Service", style="cyan")
    table.add_column("Number", style="bold")
    table.add_column("Available")
    table.add_column("Text", justify="center")
    for h in res.hotlines:
        table.add_row(h.name, h.number, h.available, "yes" if h.can_text else "")
    console.print(table)
    for url in res.web_chats:
        console.print(f"  Chat: {url}")


# ── Plugins ──────────────────────────────────────────────────────────


@main.command()
@click.pass_obj
def plugins(config: AimateConfig):
    """List enabled plugins in pipeline order."""

    async def run():
        manager = await _start_manager(config)
        try:
            return manager.list_plugins(), manager.ordered_interceptors()
        finally:
            await manager.shutdown()

    loaded, pipeline = asyncio.run(run())
    order = {p.id: i + 1 for i, p in enumerate(pipeline)}

    table = Table(title=f"Plugins ({len(loaded)} loaded)")
    table.add_column("Pipeline", style="dim", justify="right")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Version")
    table.add_column("Priority", justify="right")
    table.add_column("Capabilities")
    for p in loaded:
        info = p.describe()
        table.add_row(
            str(order.get(p.id, "-")),
            p.id,
            p.name,
            p.version,
            "-" if p.priority is None else str(p.priority),
            ", ".join(info["capabilities"]),
        )
    console.print(table)


@main.command()
@click.pass_obj
def tools(config: AimateConfig):
    """List every tool exposed by enabled plugins."""

    async def run():
        manager = await _start_manager(config)
        try:
            return manager.get_all_tools()
        finally:
            await manager.shutdown()

    table = Table(title="Plugin Tools")
    table.add_column("Plugin", style="cyan")
    table.add_column("Tool", style="bold")
    table.add_column("Parameters")
    table.add_column("Confirm", justify="center")
    for plugin_id, tool in asyncio.run(run()):
        params = ", ".join(
            f"{p.name}: {p.type.value}{'' if p.required else '?'}" for p in tool.parameters
        )
        table.add_row(plugin_id, tool.name, params, "yes" if tool.requires_confirmation else "")
    console.print(table)


@main.command(name="run-tool")
@click.argument("plugin_id")
@click.argument("tool_name")
@click.option(
    "--param", "-p", "params", multiple=True, help="key=value; values are parsed as YAML"
)
@click.pass_obj
def run_tool(config: AimateConfig, plugin_id: str, tool_name: str, params: tuple[str, ...]):
    """Execute TOOL_NAME on PLUGIN_ID.

    Example: aimate run-tool web-search web_search -p query="nz news" -p num_results=3
    """
    parameters = {}
    for item in params:
        key, sep, raw = item.partition("=")
        if not sep:
            raise click.BadParameter(f"expected key=value, got {item!r}", param_hint="--param")
        try:
            parameters[key] = yaml.safe_load(raw) if raw else ""
        except yaml.YAMLError:
            parameters[key] = raw

    async def run():
        from aimate.llm.client import LiteLLMClient

        client = LiteLLMClient(config.litellm)
        manager = await _start_manager(config, backend=client)
        try:
            return await manager.execute_tool(plugin_id, tool_name, parameters)
        finally:
            await manager.shutdown()
            await client.aclose()

    result = asyncio.run(run())
    if not result.success:
        console.print(f"[red]Failed:[/] {result.error}")
        raise SystemExit(1)
    if isinstance(result.result, str):
        console.print(result.result)
    else:
        console.print_json(data=result.result)


# ── Chat ─────────────────────────────────────────────────────────────


@main.command()
@click.option("--model", "-m", default=None, help="Model name (default from config)")
@click.option("--stream/--no-stream", default=True, help="Stream replies as they arrive")
@click.pass_obj
def chat(config: AimateConfig, model: str | None, stream: bool):
    """Interactive chat through the full plugin pipeline.  Type 'exit' to quit."""
    from aimate.chat.service import ChatService, TurnStatus
    from aimate.llm.client import LiteLLMClient
    from aimate.models.chat import Conversation

    user_settings = {
        "region": config.safety.region,
        "sensitivity": config.safety.sensitivity.value,
        "auto_intervene": config.safety.auto_intervene,
    }

    async def run():
        client = LiteLLMClient(config.litellm)
        manager = await _start_manager(config, backend=client)
        service = ChatService(client, manager, config.chat)
        conversation = Conversation()
        console.print(
            f"\n[bold blue]aiMate[/] chat ({model or config.litellm.default_model} "
            f"via {config.litellm.base_url})\n"
        )
        try:
            while True:
                text = (await asyncio.to_thread(click.prompt, "you", prompt_suffix="> ")).strip()
                if text.lower() in {"exit", "quit"}:
                    break
                if not text:
                    continue
                if stream:
                    outcome = None
                    async for event in service.stream_message(
                        conversation, text, user_settings, model
                    ):
                        if event.kind == "chunk":
                            console.print(event.content, end="", markup=False, highlight=False)
                        else:
                            outcome = event.outcome
                            if event.replaced and outcome.reply is not None:
                                console.print()
                                console.print(Panel(Markdown(outcome.reply.content)))
                    console.print()
                else:
                    outcome = await service.send_message(conversation, text, user_settings, model)
                    if outcome.reply is not None:
                        console.print(Markdown(outcome.reply.content))
                if outcome is not None and outcome.status is not TurnStatus.COMPLETED:
                    console.print(f"[dim]({outcome.status.value})[/]")
        finally:
            await client.aclose()
            await manager.shutdown()

    try:
        asyncio.run(run())
    except (click.Abort, EOFError):
        console.print()


if __name__ == "__main__":
    main()
