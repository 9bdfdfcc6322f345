#!/usr/bin/env python3
"""
animate — prompt-to-animation pipeline CLI (pip-installable entry point).

Subcommands
-----------
  animate normalize FILE          Normalize raw model output, print NormalizedScript
  animate quota                   Quota decision for an account and complexity tier
  animate render                  Full pipeline on raw model output from a file
  animate generate                Full pipeline from a natural-language prompt
  animate account create|show|set-plan
                                  Manage the JSON account store
  animate artifact url|meta|delete
                                  Inspect or remove a stored video
  animate doctor                  Report the renderer version

Results are printed to stdout as JSON; diagnostics go to stderr.
Exit code: 0 on success, 1 on failure or denial.

Configuration comes from the environment (see schemas.pipeline_config);
flags override single fields.
"""
from __future__ import annotations

import sys
from pathlib import Path

# When run as a script, the sibling sub-packages (schemas, renderer, ...)
# are imported with their flat names.
_PKG_DIR = Path(__file__).resolve().parent
if str(_PKG_DIR) not in sys.path:
    sys.path.insert(0, str(_PKG_DIR))

import argparse
import asyncio
import json
import logging
from typing import Optional, Sequence

from schemas.errors import NotFound, PipelineError
from schemas.pipeline_config import PipelineConfig
from schemas.render_request import ComplexityTier, PlanTier, QualityProfile, RenderRequest
from normalizer.source_normalizer import normalize
from orchestrator.runtime import PipelineRuntime
from quota.account_store import JsonFileAccountStore
from quota.gate import check_eligibility
from renderer.manim_runner import get_renderer_version

_COMPLEXITY_CHOICES = [t.value for t in ComplexityTier]
_PLAN_CHOICES = [t.value for t in PlanTier]
_QUALITY_CHOICES = [q.value for q in QualityProfile]


# =============================================================================
# Shared helpers
# =============================================================================

def _print_json(payload) -> None:
    if hasattr(payload, "model_dump_json"):
        print(payload.model_dump_json(indent=2))
    else:
        print(json.dumps(payload, indent=2, default=str))


def _load_config(args: argparse.Namespace) -> PipelineConfig:
    """Environment first, then any flag the subcommand defines."""
    config = PipelineConfig.from_env()
    updates: dict = {}
    if getattr(args, "accounts", None) is not None:
        updates["accounts_path"] = args.accounts
    if getattr(args, "timeout", None) is not None:
        updates["render_timeout_sec"] = args.timeout
    if getattr(args, "keep_output", False):
        updates["keep_local_output"] = True
    if not updates:
        return config
    return PipelineConfig.model_validate({**config.model_dump(), **updates})


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


# =============================================================================
# Subcommands
# =============================================================================

def cmd_normalize(source_path: Path) -> int:
    try:
        raw = source_path.read_text(encoding="utf-8")
    except OSError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    _print_json(normalize(raw))
    return 0


def cmd_quota(accounts_path: Path, account_id: str, complexity: str) -> int:
    usage = JsonFileAccountStore(accounts_path).get_usage(account_id)
    if usage is None:
        print(f"ERROR: unknown account {account_id!r}", file=sys.stderr)
        return 1
    decision = check_eligibility(usage, complexity)
    _print_json(decision)
    return 0 if decision.allowed else 1


def cmd_render(
    config: PipelineConfig,
    source_path: Path,
    account_id: str,
    complexity: str,
    quality: str,
) -> int:
    try:
        raw = source_path.read_text(encoding="utf-8")
    except OSError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    try:
        with PipelineRuntime.create(config) as runtime:
            usage = runtime.accounts.get_usage(account_id)
            request = RenderRequest(
                source_text=raw,
                complexity=complexity,
                quality=quality,
                account_id=account_id,
                plan_tier=usage.plan_tier if usage else PlanTier.BASIC,
            )
            result = asyncio.run(runtime.orchestrator.run(request))
    except ValueError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    _print_json(result)
    return 0 if result.success else 1


def cmd_generate(
    config: PipelineConfig,
    prompt: str,
    account_id: str,
    complexity: str,
    quality: str,
) -> int:
    if not config.generation.api_key:
        print("ERROR: GEMINI_API_KEY is not set", file=sys.stderr)
        return 1
    try:
        with PipelineRuntime.create(config) as runtime:
            result = asyncio.run(
                runtime.orchestrator.generate(prompt, account_id, complexity, quality)
            )
    except ValueError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    _print_json(result)
    return 0 if result.success else 1


def cmd_account(action: str, accounts_path: Path, account_id: str, plan: Optional[str]) -> int:
    store = JsonFileAccountStore(accounts_path)
    try:
        if action == "create":
            record = store.create_account(account_id, plan or PlanTier.BASIC)
        elif action == "set-plan":
            if plan is None:
                raise ValueError("set-plan needs --plan")
            record = store.update_plan(account_id, plan)
        else:
            record = store.get_usage(account_id)
            if record is None:
                raise KeyError(f"unknown account {account_id!r}")
    except (KeyError, ValueError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    _print_json({"account_id": account_id, **record.model_dump(mode="json")})
    return 0


def cmd_artifact(config: PipelineConfig, action: str, account_id: str, job_id: str) -> int:
    try:
        with PipelineRuntime.create(config) as runtime:
            store = runtime.store
            if action == "url":
                url = store.get_retrieval_url(account_id, job_id, config.url_expiry_sec)
                if not url:
                    print("ERROR: no retrieval URL available", file=sys.stderr)
                    return 1
                _print_json({"url": url})
            elif action == "meta":
                _print_json(store.get_metadata(account_id, job_id))
            else:
                deleted = store.delete(account_id, job_id)
                _print_json({"deleted": deleted})
                if not deleted:
                    return 1
    except (NotFound, ValueError) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    return 0


def cmd_doctor(config: PipelineConfig) -> int:
    try:
        version = get_renderer_version(config.renderer_cmd)
    except PipelineError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    _print_json({
        "renderer": " ".join(config.renderer_cmd),
        "version": version,
        "storage_endpoint": config.storage.endpoint_url,
        "bucket": config.storage.bucket,
        "generation_configured": bool(config.generation.api_key),
    })
    return 0


# =============================================================================
# CLI entry point
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="animate",
        description="animate — prompt-to-animation render job pipeline",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    # ── animate normalize ────────────────────────────────────────────────────
    norm_parser = sub.add_parser("normalize", help="Normalize raw model output")
    norm_parser.add_argument("source", type=Path, help="File holding raw model output")

    # ── animate quota ────────────────────────────────────────────────────────
    quota_parser = sub.add_parser("quota", help="Check whether an account may render")
    quota_parser.add_argument("--accounts", type=Path, default=None, metavar="PATH",
                              help="JSON account store (default: $ANIMATE_ACCOUNTS_PATH)")
    quota_parser.add_argument("--account", required=True, metavar="ID")
    quota_parser.add_argument("--complexity", default="basic", choices=_COMPLEXITY_CHOICES)

    # ── animate render / generate ────────────────────────────────────────────
    render_parser = sub.add_parser("render", help="Render raw model output for an account")
    render_parser.add_argument("--source", type=Path, required=True, metavar="PATH",
                               help="File holding raw model output")
    gen_parser = sub.add_parser("generate", help="Generate and render from a prompt")
    gen_parser.add_argument("--prompt", required=True, help="Natural-language description")
    for p in (render_parser, gen_parser):
        p.add_argument("--account", required=True, metavar="ID")
        p.add_argument("--accounts", type=Path, default=None, metavar="PATH")
        p.add_argument("--complexity", default="basic", choices=_COMPLEXITY_CHOICES)
        p.add_argument("--quality", default="medium", choices=_QUALITY_CHOICES)
        p.add_argument("--timeout", type=float, default=None, metavar="SEC",
                       help="Render wall-clock limit (default: $ANIMATE_RENDER_TIMEOUT or 300)")
        p.add_argument("--keep-output", action="store_true",
                       help="Keep the local mp4 after a successful upload")

    # ── animate account ──────────────────────────────────────────────────────
    account_parser = sub.add_parser("account", help="Manage accounts")
    account_parser.add_argument("action", choices=["create", "show", "set-plan"])
    account_parser.add_argument("--accounts", type=Path, default=None, metavar="PATH")
    account_parser.add_argument("--account", required=True, metavar="ID")
    account_parser.add_argument("--plan", default=None, choices=_PLAN_CHOICES)

    # ── animate artifact ─────────────────────────────────────────────────────
    artifact_parser = sub.add_parser("artifact", help="Inspect or delete a stored video")
    artifact_parser.add_argument("action", choices=["url", "meta", "delete"])
    artifact_parser.add_argument("--account", required=True, metavar="ID")
    artifact_parser.add_argument("--job", required=True, metavar="ID")

    # ── animate doctor ───────────────────────────────────────────────────────
    sub.add_parser("doctor", help="Report renderer and storage configuration")

    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    _configure_logging(args.verbose)

    if args.command == "normalize":
        sys.exit(cmd_normalize(args.source))

    try:
        config = _load_config(args)
    except ValueError as exc:
        print(f"ERROR: invalid configuration: {exc}", file=sys.stderr)
        sys.exit(1)

    if args.command == "quota":
        sys.exit(cmd_quota(config.accounts_path, args.account, args.complexity))
    elif args.command == "render":
        sys.exit(cmd_render(config, args.source, args.account, args.complexity, args.quality))
    elif args.command == "generate":
        sys.exit(cmd_generate(config, args.prompt, args.account, args.complexity, args.quality))
    elif args.command == "account":
        sys.exit(cmd_account(args.action, config.accounts_path, args.account, args.plan))
    elif args.command == "artifact":
        sys.exit(cmd_artifact(config, args.action, args.account, args.job))
    elif args.command == "doctor":
        sys.exit(cmd_doctor(config))


if __name__ == "__main__":
    main()
