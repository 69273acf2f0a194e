"""CLI entrypoint for generating trade signals."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
import sys

from pydantic import ValidationError

from tradegen.core.config import Settings
from tradegen.core.models import PipelineConfig, PipelineInput, StrategySpec
from tradegen.pipeline.service import SignalPipeline
from tradegen.providers.registry import default_registry


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="AI trade signal generator")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run the signal pipeline once for a strategy")
    run.add_argument("--strategy", required=True, help="Strategy file: plain text, or JSON with id/name/content")
    run.add_argument("--config", help="JSON file with run config (capital, leverage, numResults, ...)")
    run.add_argument("--provider", help="Override the AI provider from the config file")
    run.add_argument("--output", help="Write the full result JSON here instead of stdout")

    sub.add_parser("providers", help="List registered AI providers")
    return parser


def load_strategy(path: Path) -> StrategySpec:
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        return StrategySpec.model_validate_json(text)
    return StrategySpec(id=path.stem, name=path.stem.replace("_", " ").title(), content=text)


def load_config(path: Path | None) -> PipelineConfig:
    if path is None:
        return PipelineConfig()
    return PipelineConfig.model_validate_json(path.read_text(encoding="utf-8"))


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        stream=sys.stderr,
    )

    if args.command == "providers":
        print(json.dumps({"providers": default_registry(settings).info()}, ensure_ascii=False, indent=2))
        return 0

    if args.command == "run":
        try:
            strategy = load_strategy(Path(args.strategy))
            config = load_config(Path(args.config) if args.config else None)
        except (OSError, ValidationError) as exc:
            print(json.dumps({"error": str(exc)}, ensure_ascii=False), file=sys.stderr)
            return 2
        if args.provider:
            config = config.model_copy(update={"ai_provider": args.provider})

        result = SignalPipeline(settings).generate_sync(PipelineInput(strategy=strategy, config=config))
        payload = result.to_payload()
        if args.output:
            out = Path(args.output)
            out.parent.mkdir(parents=True, exist_ok=True)
            out.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
            print(json.dumps({"output": str(out), "ok": result.ok}, ensure_ascii=False))
        else:
            print(json.dumps(payload, ensure_ascii=False, indent=2))
        return 0 if result.ok else 1

    return 1


if __name__ == "__main__":
    raise SystemExit(main())
