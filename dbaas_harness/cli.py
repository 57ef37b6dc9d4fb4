"""
Command line entry point.
"""
import asyncio
from typing import Any, Awaitable, Callable, Optional, TypeVar

import typer

from dbaas_harness.config.logging import configure_logging, get_logger
from dbaas_harness.config.settings import settings
from dbaas_harness.exceptions import HarnessError, ProvisioningError
from dbaas_harness.models.report import StepOutcome, WorkflowReport
from dbaas_harness.models.resources import DatabaseMode, ResourceBundle
from dbaas_harness.services.connectivity import get_app_response
from dbaas_harness.services.orchestrator import WorkflowOrchestrator
from dbaas_harness.services.resource_store import KubernetesResourceStore, ResourceStore
from dbaas_harness.services.schedule_validator import check_schedule
from dbaas_harness.services.status_resolver import StatusResolver
from dbaas_harness.services.templates import load_bundle

logger = get_logger(__name__)

T = TypeVar("T")

app = typer.Typer(help="Provision, clone, verify and tear down NDB-managed databases")

TemplatesOption = typer.Option(
    None, "--templates", "-t", help="Template directory (defaults to TEMPLATES_DIR)"
)

_OUTCOME_COLORS = {
    StepOutcome.FAILED: typer.colors.RED,
    StepOutcome.SKIPPED: typer.colors.YELLOW,
}


def _print_report(report: Optional[WorkflowReport]) -> None:
    if report is None:
        return
    typer.secho(f"{report.workflow} run {report.run_id}", bold=True)
    for step in report.steps:
        line = f"  {step.outcome.value:<8} {step.step:<34} {step.resource}"
        if step.error:
            line += f"  ({step.error})"
        typer.secho(line, fg=_OUTCOME_COLORS.get(step.outcome, typer.colors.GREEN))


def _bundle(templates: Optional[str]) -> ResourceBundle:
    try:
        return load_bundle(templates)
    except HarnessError as e:
        typer.secho(e.message, fg=typer.colors.RED, err=True)
        raise typer.Exit(1)


def _run(work: Callable[[ResourceStore], Awaitable[T]]) -> T:
    """Run ``work`` against a Kubernetes store, exiting non-zero on harness errors."""

    async def runner() -> T:
        store = await KubernetesResourceStore.from_kubeconfig(settings.kubeconfig)
        try:
            return await work(store)
        finally:
            await store.close()

    try:
        return asyncio.run(runner())
    except ProvisioningError as e:
        _print_report(e.report)
        typer.secho(e.message, fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    except HarnessError as e:
        typer.secho(e.message, fg=typer.colors.RED, err=True)
        raise typer.Exit(1)


@app.callback()
def main() -> None:
    configure_logging()


@app.command()
def provision(templates: Optional[str] = TemplatesOption) -> None:
    """Create the bundle's resources and wait for the database and app pod."""
    bundle = _bundle(templates)
    report = _run(lambda store: WorkflowOrchestrator(store).provision(bundle))
    _print_report(report)
    if not report.ok:
        raise typer.Exit(1)


@app.command()
def deprovision(templates: Optional[str] = TemplatesOption) -> None:
    """Delete the bundle's resources, best-effort."""
    bundle = _bundle(templates)
    report = _run(lambda store: WorkflowOrchestrator(store).deprovision(bundle))
    _print_report(report)
    if not report.ok:
        raise typer.Exit(1)


@app.command()
def status(templates: Optional[str] = TemplatesOption) -> None:
    """Show what NDB reports for the bundle's database or clone."""
    bundle = _bundle(templates)
    response = _run(lambda store: StatusResolver(store).resolve_status(bundle))
    typer.echo(f"id:     {response.id}")
    typer.echo(f"name:   {response.name}")
    typer.echo(f"type:   {response.type}")
    typer.echo(f"status: {response.status}")


@app.command("verify-schedule")
def verify_schedule(templates: Optional[str] = TemplatesOption) -> None:
    """Check the time machine schedule NDB runs against the requested one."""
    bundle = _bundle(templates)
    database = bundle.database
    if database is None or database.mode is not DatabaseMode.INSTANCE:
        typer.echo("No time machine requested; nothing to verify.")
        return
    instance = database.spec.instance
    if instance is None or instance.time_machine is None:
        typer.echo("No time machine requested; nothing to verify.")
        return

    async def work(store: ResourceStore) -> Any:
        time_machine = await StatusResolver(store).resolve_time_machine(bundle)
        check_schedule(instance.time_machine, time_machine)
        return time_machine

    time_machine = _run(work)
    typer.secho(f"Time machine {time_machine.name} matches the requested schedule", fg=typer.colors.GREEN)


@app.command("check-app")
def check_app(
    templates: Optional[str] = TemplatesOption,
    local_port: int = typer.Option(settings.app_local_port, "--local-port", help="Local port to forward"),
) -> None:
    """Port-forward to the app pod and GET its root page."""
    bundle = _bundle(templates)
    if bundle.workload is None:
        typer.secho("Bundle has no app pod", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

    try:
        response = asyncio.run(
            get_app_response(
                bundle.workload,
                local_port,
                namespace=bundle.namespace(settings.default_namespace),
                wait_seconds=settings.port_forward_wait_seconds,
                kubeconfig=settings.kubeconfig,
            )
        )
    except HarnessError as e:
        typer.secho(e.message, fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

    typer.echo(f"{response.status_code} {response.reason_phrase}")
    if response.status_code != 200:
        raise typer.Exit(1)
