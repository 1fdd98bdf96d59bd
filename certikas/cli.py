"""CLI commands for CertiKAS."""

import asyncio
import json
from pathlib import Path

import click

from certikas.certificates.service import CertificationEngine
from certikas.certificates.tracker import TrackerOutcome
from certikas.db.session import init_db
from certikas.errors import CertificationError
from certikas.identity.directory import ClaimantRecord, InMemoryClaimantDirectory
from certikas.ledger.simulated import SimulatedLedger
from certikas.logging_config import configure_logging
from certikas.provenance.digest import digest
from certikas.settings import get_settings
from certikas.storage.memory import InMemoryCertificateStore
from certikas.webhooks.events import InMemoryPublisher


@click.group()
def cli():
    """CertiKAS CLI."""
    settings = get_settings()
    configure_logging(settings)
    settings.validate_production_settings()


@cli.command("digest")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def digest_command(path: Path):
    """Print the content digest of a file."""
    click.echo(digest(path.read_bytes()).hex)


@cli.command("init-db")
def init_db_command():
    """Create database tables."""
    click.echo("Creating tables...")
    try:
        init_db()
    except Exception as e:
        click.echo(f"✗ Error creating tables: {e}", err=True)
        raise SystemExit(1)
    click.echo("✓ Tables created.")


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--category", default="document", show_default=True)
@click.option("--score", default=85.0, show_default=True, help="Claimant eligibility score.")
@click.option("--blocks-per-poll", default=2, show_default=True)
def simulate(path: Path, category: str, score: float, blocks_per_poll: int):
    """Certify a file end to end against the simulated ledger."""
    settings = get_settings().model_copy(update={"poll_interval_seconds": 0.01})
    try:
        outcome, certificate, events = asyncio.run(
            _simulate(path.read_bytes(), category, score, blocks_per_poll, settings)
        )
    except CertificationError as e:
        click.echo(f"✗ Certification failed [{e.code}]: {e}", err=True)
        raise SystemExit(1)
    click.echo(json.dumps(certificate.to_dict(), indent=2))
    click.echo(f"Tracker outcome: {outcome.value if outcome else 'unknown'}")
    for event in events:
        click.echo(f"Event: {event.event_type}")


async def _simulate(content: bytes, category: str, score: float, blocks_per_poll: int, settings):
    claimants = InMemoryClaimantDirectory([ClaimantRecord("kaspa:demo", eligibility_score=score, verified=True)])
    publisher = InMemoryPublisher()
    engine = CertificationEngine(
        ledger=SimulatedLedger(network=settings.ledger_network, blocks_per_poll=blocks_per_poll),
        claimants=claimants,
        store=InMemoryCertificateStore(),
        publisher=publisher,
        settings=settings,
    )
    certificate = await engine.issue(content, category, "kaspa:demo", {"source": "cli"})
    outcome: TrackerOutcome = await engine.monitor.wait(certificate.id)
    await engine.shutdown()
    return outcome, await engine.get_certificate(certificate.id), publisher.events


if __name__ == "__main__":
    cli()
