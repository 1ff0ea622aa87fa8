"""
cops — CLI entrypoint.

Usage:
    cops --help
    cops reconcile buildkit ci/buildkitd
    cops render buildkit examples/buildkit.yaml
    cops certs ./certs
    cops run
    cops config check
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click
import yaml

from cops import __version__
from cops.core.observability.logging_config import setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="cops")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to cops.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """cops — converge buildkitd fleets and Buildkite controllers."""
    ctx.ensure_object(dict)
    ctx.obj["quiet"] = quiet
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get("COPS_LOG_LEVEL", "WARNING")

    setup_logging(
        level=level,
        log_file=os.environ.get("COPS_LOG_FILE"),
        log_file_level=os.environ.get("COPS_LOG_FILE_LEVEL"),
        quiet_third_party=not debug,
    )


def _load_config(ctx: click.Context):
    from cops.core.config.loader import ConfigError, load_config

    try:
        return load_config(ctx.obj.get("config_path"))
    except ConfigError as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(2)


def _kubectl_store(config):
    from cops.adapters.store.kubectl import KubectlStore

    return KubectlStore(timeout=config.kubectl_timeout, context=config.kubectl_context)


# ── reconcile ───────────────────────────────────────────────────


@cli.command()
@click.argument("kind")
@click.argument("key")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def reconcile(ctx: click.Context, kind: str, key: str, as_json: bool) -> None:
    """Run one reconciliation pass for KIND NAMESPACE/NAME."""
    from cops.core.engine.pipelines import pipeline_for, reconcile_resource
    from cops.core.errors import CopsError
    from cops.core.models.resource import NamespacedName

    config = _load_config(ctx)
    try:
        nn = NamespacedName.parse(key)
        kind = pipeline_for(kind, config).kind
    except (KeyError, ValueError) as e:
        raise click.BadParameter(str(e).strip("'\"")) from e

    try:
        report = reconcile_resource(_kubectl_store(config), kind, nn.namespace, nn.name, config)
    except CopsError as e:
        if as_json:
            click.echo(json.dumps({"ok": False, "error": str(e), "type": type(e).__name__}))
        else:
            click.secho(f"❌ {type(e).__name__}: {e}", fg="red", err=True)
        sys.exit(1)

    if as_json:
        click.echo(json.dumps({"ok": True, **report.to_dict()}, indent=2))
        return

    if report.outcome == "not-found":
        click.echo(f"{report.kind} {nn} not found — nothing to do")
        return

    click.secho(f"✅ {report.kind} {nn}", fg="green", bold=True)
    if not ctx.obj.get("quiet"):
        for step in report.steps:
            click.echo(f"   • {step.step:<18} {step.kind} {step.name}: {step.action}")
        if report.status:
            click.echo(f"   state: {report.status.get('state')}  nodes: {len(report.status.get('nodes', []))}")


# ── render ──────────────────────────────────────────────────────


@cli.command()
@click.argument("manifest", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--namespace", "-n", default="default", help="Namespace when the manifest has none.")
@click.option("--show-secrets", is_flag=True, help="Print Secret data instead of redacting it.")
@click.pass_context
def render(ctx: click.Context, manifest: Path, namespace: str, show_secrets: bool) -> None:
    """Print the children a declared-resource MANIFEST converges to (no cluster access)."""
    from cops.adapters.store.memory import MemoryStore
    from cops.core.engine.pipelines import pipeline_for, reconcile_resource
    from cops.core.errors import CopsError

    config = _load_config(ctx)
    try:
        declared = yaml.safe_load(manifest.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise click.BadParameter(f"Invalid YAML: {e}") from e
    if not isinstance(declared, dict) or not declared.get("kind"):
        raise click.BadParameter("Manifest must be a single object with a kind")

    try:
        kind = pipeline_for(str(declared["kind"]), config).kind
    except KeyError as e:
        raise click.BadParameter(str(e).strip("'\"")) from e

    meta = declared.setdefault("metadata", {})
    meta.setdefault("namespace", namespace)
    if not meta.get("name"):
        raise click.BadParameter("Manifest has no metadata.name")
    # Store under the registered spelling so the pass finds it
    declared["kind"] = kind

    store = MemoryStore([declared])
    try:
        report = reconcile_resource(store, kind, meta["namespace"], meta["name"], config)
    except CopsError as e:
        click.secho(f"❌ {type(e).__name__}: {e}", fg="red", err=True)
        sys.exit(1)

    if report.outcome == "not-found":
        click.secho(f"❌ {kind} {meta['namespace']}/{meta['name']} was not reconciled", fg="red", err=True)
        sys.exit(1)

    docs = []
    for step in report.steps:
        if step.action == "skipped":
            continue
        obj = store.peek(step.kind, report.namespace, step.name)
        if obj is None:
            continue
        if obj["kind"] == "Secret" and not show_secrets:
            obj["data"] = {k: "<redacted>" for k in obj.get("data", {})}
        docs.append(obj)
    click.echo(yaml.safe_dump_all(docs, default_flow_style=False, sort_keys=False), nl=False)


# ── certs ───────────────────────────────────────────────────────


@cli.command()
@click.argument("outdir", type=click.Path(file_okay=False, path_type=Path))
@click.option("--host", "hosts", multiple=True, help="DNS name for the leaf certificate (repeatable).")
@click.option("--force", is_flag=True, help="Overwrite existing files.")
def certs(outdir: Path, hosts: tuple[str, ...], force: bool) -> None:
    """Issue a CA + leaf bundle into OUTDIR (ca.pem, cert.pem, key.pem)."""
    from cops.core.errors import CryptoFailure
    from cops.core.services.certs import issue_certificate_bundle

    targets = {name: outdir / name for name in ("ca.pem", "cert.pem", "key.pem")}
    existing = [str(p) for p in targets.values() if p.exists()]
    if existing and not force:
        click.secho(f"❌ Refusing to overwrite: {', '.join(existing)} (use --force)", fg="red", err=True)
        sys.exit(1)

    try:
        bundle = issue_certificate_bundle(list(hosts) or None)
    except CryptoFailure as e:
        click.secho(f"❌ {e}", fg="red", err=True)
        sys.exit(1)

    outdir.mkdir(parents=True, exist_ok=True)
    targets["ca.pem"].write_bytes(bundle.ca_pem)
    targets["cert.pem"].write_bytes(bundle.cert_pem)
    targets["key.pem"].write_bytes(bundle.key_pem)
    targets["key.pem"].chmod(0o600)
    click.secho(f"✅ Wrote ca.pem, cert.pem, key.pem to {outdir}", fg="green")


# ── run ─────────────────────────────────────────────────────────


@cli.command()
@click.option("--once", is_flag=True, help="Run a single sweep and exit.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output the sweep as JSON (with --once).")
@click.pass_context
def run(ctx: click.Context, once: bool, as_json: bool) -> None:
    """Run the controller loop against the current kubectl context."""
    from cops.core.engine.controller import Controller

    config = _load_config(ctx)
    controller = Controller(_kubectl_store(config), config)

    if once:
        report = controller.run_once()
        if as_json:
            click.echo(json.dumps({
                **report.to_dict(),
                "metrics": controller.metrics.to_dict(),
            }, indent=2))
        else:
            click.echo(f"reconciled: {len(report.reconciled)}  failed: {len(report.failed)}")
            for key, error in report.failed.items():
                click.secho(f"   ❌ {key}: {error}", fg="red")
        sys.exit(0 if report.ok else 1)

    try:
        controller.run()
    except KeyboardInterrupt:
        click.echo("stopped")


# ── config ──────────────────────────────────────────────────────


@cli.group()
def config() -> None:
    """Operator configuration commands."""


@config.command("check")
@click.pass_context
def config_check(ctx: click.Context) -> None:
    """Validate cops.yml + COPS_* overrides and print the effective config."""
    cfg = _load_config(ctx)
    click.echo(yaml.safe_dump(cfg.model_dump(mode="json"), default_flow_style=False, sort_keys=True), nl=False)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
