import json
import os
import signal
import threading
from contextlib import contextmanager
from dataclasses import asdict

import click

from .config import DURABLE, STORES, Config
from .engine import Engine
from .errors import QueError
from .models import STATUSES
from .store import build_store
from .utils import configure_logging, import_path
from .worker import Worker


@click.group(help="quectl: background job engine CLI")
@click.option("--store", "store_kind", type=click.Choice(STORES), default=None,
              help="Job store (env QUECTL_STORE, default: durable)")
@click.option("--db", "db_path", default=None, help="SQLite file (env QUECTL_DB)")
@click.option("--log-level", default=None, help="Logging level (env QUECTL_LOG_LEVEL)")
@click.pass_context
def cli(ctx, store_kind, db_path, log_level):
    try:
        # the command line only makes sense against a file, so durable is its default
        store_kind = store_kind or os.environ.get("QUECTL_STORE") or DURABLE
        config = Config.from_env(store=store_kind, db_path=db_path, log_level=log_level)
    except ValueError as e:
        raise click.ClickException(str(e))
    configure_logging(config.log_level)
    ctx.obj = config


@contextmanager
def open_store(config: Config):
    store = build_store(config)
    try:
        store.setup()
        yield store
    except QueError as e:
        click.secho(f"Error: {e}", fg="red")
        raise SystemExit(1)
    finally:
        store.close()


def job_line(job) -> str:
    return (
        f"{job.id:>8} | {job.worker:<20} | {job.status:<9} | updated={job.updated_at} "
        f"| args={json.dumps(job.arguments)} | error={job.error}"
    )


# ---------- Setup ----------
@cli.command("setup", help="Create the on-disk job store")
@click.pass_obj
def setup_cmd(config):
    store = build_store(config)
    try:
        store.setup()
        click.secho(f"Job store ready ({config.store}: {config.db_path})", fg="green")
    except QueError as e:
        click.secho(f"Error: {e}", fg="red")
        raise SystemExit(1)
    finally:
        store.close()


# ---------- Jobs ----------
@cli.command("list", help="List jobs")
@click.option("--status", type=click.Choice(STATUSES), default=None)
@click.option("--worker", default=None, help="Only jobs of this worker type")
@click.pass_obj
def list_cmd(config, status, worker):
    with open_store(config) as store:
        jobs = store.find_by_status(status) if status else store.find_all()
    if worker:
        jobs = [j for j in jobs if j.worker == worker]

    if not jobs:
        click.echo("No jobs.")
        return
    for job in jobs:
        click.echo(job_line(job))


@cli.command("status", help="Job counts per status")
@click.pass_obj
def status_cmd(config):
    with open_store(config) as store:
        click.echo(json.dumps(store.count_by_status(), indent=2))


@cli.command("show", help="Show one job as JSON")
@click.argument("job_id", type=int)
@click.pass_obj
def show_cmd(config, job_id):
    with open_store(config) as store:
        job = store.find(job_id)
    if job is None:
        click.secho(f"Error: job {job_id} not found.", fg="red")
        raise SystemExit(1)
    click.echo(json.dumps(asdict(job), indent=2))


@cli.command("destroy", help="Delete a job record")
@click.argument("job_id", type=int)
@click.pass_obj
def destroy_cmd(config, job_id):
    with open_store(config) as store:
        store.destroy(job_id)
    click.secho(f"Destroyed job {job_id}.", fg="green")


# ---------- Engine ----------
def load_workers(paths):
    workers = []
    for path in paths:
        found = import_path(path)
        if isinstance(found, Worker):
            workers.append(found)
            continue
        workers.extend(v for v in vars(found).values() if isinstance(v, Worker))
    return workers


@cli.command("run", help="Run the workers defined in MODULES until interrupted")
@click.argument("modules", nargs=-1, required=True)
@click.pass_obj
def run_cmd(config, modules):
    try:
        workers = load_workers(modules)
    except (ImportError, ValueError) as e:
        click.secho(f"Error: {e}", fg="red")
        raise SystemExit(1)
    if not workers:
        click.secho("Error: no workers found.", fg="red")
        raise SystemExit(1)

    stop = threading.Event()

    def _handler(signum, frame):
        click.echo(f"\nReceived signal {signum}. Stopping…")
        stop.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, _handler)

    try:
        engine = Engine.from_config(config, workers)
        engine.setup_store()
        engine.start()
    except QueError as e:
        click.secho(f"Error: {e}", fg="red")
        raise SystemExit(1)

    names = ", ".join(engine.workers)
    click.secho(f"Running {names}. Press Ctrl+C to stop…", fg="cyan")
    try:
        while not stop.wait(0.5):
            pass
    finally:
        engine.shutdown(timeout=5)
    click.secho("Engine stopped.", fg="yellow")


def main():
    cli()
