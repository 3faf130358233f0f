"""
Lifecycle commands for the LLM platform.

Usage:
    llm-platform synth                     # render templates into cdk.out (no AWS calls)
    llm-platform graph                     # show the stack dependency graph
    llm-platform diff [STACK ...]          # compare rendered templates with deployed stacks
    llm-platform deploy [STACK ...] --yes  # apply without the approval prompt
    llm-platform destroy [STACK ...] --yes # tear down without confirmation

Every command composes the platform in-process first, so structural errors
(bad topology, missing stack input, ungated mount) fail with exit status 1
before the CDK CLI or AWS is involved. diff / deploy / destroy then delegate
to the CDK CLI and return its exit status unchanged.
"""
import argparse
import json
import logging
import os
import shlex
import subprocess
import sys
from pathlib import Path

import aws_cdk as cdk
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from llm_platform.config import config
from llm_platform.deployment import Deployment, build_deployment
from llm_platform.errors import SynthesisError
from llm_platform.topology import load_topology

console = Console()
logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_STRUCTURAL = 1
EXIT_CDK_MISSING = 127


def _cdk_context(path: Path = Path("cdk.json")) -> dict:
    """Feature flags from cdk.json so in-process synthesis matches the CDK CLI."""
    if not path.is_file():
        return {}
    return json.loads(path.read_text()).get("context", {})


def compose(topology_file: str | None = None, outdir: str | None = None) -> tuple[cdk.App, Deployment]:
    config.validate()
    app = cdk.App(outdir=outdir, context=_cdk_context())
    deployment = build_deployment(
        app,
        load_topology(topology_file if topology_file is not None else config.TOPOLOGY_FILE),
        prefix=config.stack_prefix(),
        env=config.environment(),
        image_tag=config.IMAGE_TAG,
    )
    return app, deployment


def run_cdk(verb: str, stacks: list[str], extra: list[str], topology_file: str | None = None) -> int:
    command = [*shlex.split(config.CDK_COMMAND), verb, *(stacks or ["--all"]), *extra]
    logger.info(f"[cli] {' '.join(command)}")

    # app.py reads the topology from the environment; the CDK CLI must render
    # the document that was just checked
    env = None
    if topology_file:
        env = {**os.environ, "PLATFORM_TOPOLOGY_FILE": str(Path(topology_file).resolve())}

    try:
        return subprocess.run(command, check=False, env=env).returncode
    except FileNotFoundError:
        console.print(
            Panel(
                f"CDK CLI not found: [bold]{command[0]}[/bold]\n"
                "Install it with `npm install -g aws-cdk` or set CDK_COMMAND.",
                title="[bold red]cdk missing[/bold red]",
                border_style="red",
            )
        )
        return EXIT_CDK_MISSING


# ── Commands ──────────────────────────────────────────────────────────────────

def cmd_synth(args: argparse.Namespace) -> int:
    app, deployment = compose(args.topology, outdir=args.out)
    assembly = app.synth()

    table = Table(title="Synthesized stacks")
    table.add_column("Role", style="cyan")
    table.add_column("Stack")
    table.add_column("Template", style="dim")
    roles = {stack.stack_name: role for role, stack in deployment.stacks.items()}
    for artifact in assembly.stacks:
        table.add_row(roles.get(artifact.stack_name, "-"), artifact.stack_name, artifact.template_file)
    console.print(table)
    console.print(f"[green]Cloud assembly written to[/green] {assembly.directory}")
    return EXIT_OK


def cmd_graph(args: argparse.Namespace) -> int:
    _, deployment = compose(args.topology)
    graph = deployment.graph

    if args.json:
        console.print_json(json.dumps(graph.to_dict()))
        return EXIT_OK

    table = Table(title="Dependency graph (A must exist before B)")
    table.add_column("A", style="cyan")
    table.add_column("B", style="cyan")
    table.add_column("Consumed outputs", style="dim")
    for edge in graph.edges():
        table.add_row(edge.producer, edge.consumer, ", ".join(edge.names) or "(readiness)")
    console.print(table)
    console.print(f"[bold]Build order:[/bold] {' → '.join(graph.order())}")
    return EXIT_OK


def cmd_delegate(args: argparse.Namespace) -> int:
    compose(args.topology)  # structural pre-flight, nothing is written

    extra: list[str] = []
    if args.command == "deploy" and args.yes:
        extra += ["--require-approval", "never"]
    if args.command == "destroy" and args.yes:
        extra += ["--force"]
    return run_cdk(args.command, args.stacks, extra, topology_file=args.topology)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="llm-platform", description="LLM platform infrastructure")
    parser.add_argument("--topology", default=None, help="JSON topology file (default: built-in)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    synth = sub.add_parser("synth", help="Render CloudFormation templates without contacting AWS")
    synth.add_argument("--out", default=config.CDK_OUTDIR, help="Cloud assembly directory")
    synth.set_defaults(handler=cmd_synth)

    graph = sub.add_parser("graph", help="Print the stack dependency graph")
    graph.add_argument("--json", action="store_true", help="Emit the graph as JSON")
    graph.set_defaults(handler=cmd_graph)

    for verb, text in [
        ("diff", "Compare rendered templates with deployed stacks"),
        ("deploy", "Deploy stacks"),
        ("destroy", "Destroy stacks"),
    ]:
        command = sub.add_parser(verb, help=text)
        command.add_argument("stacks", nargs="*", help="Stack names (default: all)")
        if verb != "diff":
            command.add_argument("--yes", action="store_true", help="Skip interactive approval")
        command.set_defaults(handler=cmd_delegate, yes=False)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level="DEBUG" if args.verbose else config.LOG_LEVEL,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )

    try:
        return args.handler(args)
    except (SynthesisError, ValidationError, ValueError) as exc:
        console.print(
            Panel(str(exc), title=f"[bold red]{type(exc).__name__}[/bold red]", border_style="red")
        )
        return EXIT_STRUCTURAL


if __name__ == "__main__":
    sys.exit(main())
