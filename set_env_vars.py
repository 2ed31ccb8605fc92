"""Simple .env loader and runner.

Usage:
  - Call `initialize_env_vars()` to load every known .env file and get a status dict
  - Run a command with the .env loaded:
      python set_env_vars.py --exec python main.py
"""
from __future__ import annotations

import json
import os
import pathlib
import subprocess
from typing import Dict


KNOWN_KEYS = (
    "MONGO_URI",
    "MONGO_DB",
    "MONGO_TLS_ALLOW_INVALID",
    "OPENAI_API_KEY",
    "ANTHROPIC_API_KEY",
    "GEMINI_API_KEY",
    "GOOGLE_API_KEY",
    "OPENAI_MODEL",
    "ANTHROPIC_MODEL",
    "GEMINI_MODEL",
    "EXTRACTION_TIMEOUT_S",
    "EXTRACTION_RETRIES",
    "PORT",
)


def _parse_dotenv(content: str) -> Dict[str, str]:
    pairs: Dict[str, str] = {}
    for raw in content.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        if "=" not in line:
            continue
        key, val = line.split("=", 1)
        key = key.strip()
        val = val.strip()
        if not key:
            continue
        if len(val) >= 2 and ((val[0] == val[-1] == '"') or (val[0] == val[-1] == "'")):
            val = val[1:-1]
        pairs[key] = val
    return pairs


def _load_dotenv_file(path: pathlib.Path) -> Dict[str, str]:
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    return _parse_dotenv(content)


def _coalesce_env(primary: str, aliases: list[str]) -> str | None:
    v = os.environ.get(primary)
    if v:
        return v
    for a in aliases:
        v2 = os.environ.get(a)
        if v2:
            return v2
    return None


def initialize_env_vars(
    *,
    dotenv_paths: list[str] | None = None,
    override_existing: bool = False,
) -> dict[str, bool]:
    repo_root = pathlib.Path(__file__).resolve().parent
    candidates = [repo_root / ".env", repo_root / ".env.local"]
    if dotenv_paths:
        candidates = [pathlib.Path(p).expanduser().resolve() for p in dotenv_paths] + candidates

    loaded: dict[str, str] = {}
    for p in candidates:
        for k, v in _load_dotenv_file(p).items():
            loaded.setdefault(k, v)

    def set_env(k: str, v: str | None) -> None:
        if v is None or v == "":
            return
        if not override_existing and os.environ.get(k):
            return
        os.environ[k] = v

    for k, v in loaded.items():
        if k in KNOWN_KEYS:
            set_env(k, v)

    g = _coalesce_env("GEMINI_API_KEY", ["GOOGLE_API_KEY"])
    if g:
        set_env("GEMINI_API_KEY", g)

    return {
        "mongo_uri_set": bool(os.environ.get("MONGO_URI")),
        "openai_api_key_set": bool(os.environ.get("OPENAI_API_KEY")),
        "anthropic_api_key_set": bool(os.environ.get("ANTHROPIC_API_KEY")),
        "gemini_api_key_set": bool(_coalesce_env("GEMINI_API_KEY", ["GOOGLE_API_KEY"])),
    }


def run_command_with_env(cmd: list[str]) -> int:
    """Run a command (list form) with the current process environment and return exit code."""
    return subprocess.run(cmd, env=os.environ).returncode


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Load .env and optionally run a command with it.")
    parser.add_argument("--env-file", "-e", action="append", help="Extra .env file(s) to load first")
    parser.add_argument("--override", action="store_true", help="Override existing env vars")
    parser.add_argument("--exec", "-x", nargs=argparse.REMAINDER, help="Command to run with env loaded")
    args = parser.parse_args()

    status = initialize_env_vars(dotenv_paths=args.env_file, override_existing=args.override)

    if args.exec:
        # argparse.REMAINDER already gives list form
        rc = run_command_with_env(args.exec)
        raise SystemExit(rc)
    else:
        print(json.dumps(status, indent=2))
