#!/usr/bin/env python3
"""
Idea Keeper Assistant Gateway
------------------------------
HTTP front for the assistant CLI, for runtimes that cannot spawn processes
themselves. The gateway returns the model's raw text; callers parse action
blocks on their side.

Usage:
    ideakeeper-gateway --host 127.0.0.1 --port 3000
    ideakeeper-gateway --config config/ideakeeper.yaml

API:
    POST /api/assistant/chat    → JSON body: { prompt, context }
                                  Returns: { message } or { message: "", error }
    GET  /api/assistant/health  → JSON: { available, version?, error? }
    GET  /health                → JSON: { status, db, cli_binary }

When api_secret is configured, the chat endpoint requires an X-API-Key header.
"""

import argparse
import asyncio
import hmac
import logging
import sys
from functools import wraps
from typing import Optional

from flask import Flask, jsonify, request

from ideakeeper.assistant.cli_backend import check_cli_health, invoke_cli
from ideakeeper.assistant.prompts import build_system_prompt
from ideakeeper.assistant.schema import InvocationContext
from ideakeeper.config import AssistantConfig, ConfigError

logger = logging.getLogger("ideakeeper.server")


def create_app(cfg: Optional[AssistantConfig] = None) -> Flask:
    cfg = cfg or AssistantConfig.load()

    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = cfg.max_request_bytes
    app.config["ASSISTANT"] = cfg

    # ── Auth ─────────────────────────────────────────────────────────────────

    def require_api_key(f):
        """Decorator: when a secret is set, reject requests without a matching X-API-Key."""
        @wraps(f)
        def decorated(*args, **kwargs):
            if not cfg.api_secret:
                return f(*args, **kwargs)
            provided = request.headers.get("X-API-Key", "").strip()
            if not hmac.compare_digest(provided, cfg.api_secret):
                code = 401 if not provided else 403
                return jsonify({"message": "", "error": "Unauthorized"}), code
            return f(*args, **kwargs)
        return decorated

    # ── Errors ───────────────────────────────────────────────────────────────

    @app.errorhandler(413)
    def too_large(e):
        return jsonify({"message": "", "error": "Request body too large"}), 413

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"message": "", "error": "Method not allowed"}), 405

    # ── Routes ───────────────────────────────────────────────────────────────

    @app.route("/api/assistant/chat", methods=["POST"])
    @require_api_key
    def api_chat():
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({"message": "", "error": "Request body must be a JSON object"}), 400

        prompt = data.get("prompt")
        if not isinstance(prompt, str) or not prompt.strip():
            return jsonify({"message": "", "error": "Prompt is required"}), 400

        try:
            context = InvocationContext.from_dict(data.get("context"))
            response = asyncio.run(invoke_cli(
                prompt,
                build_system_prompt(context),
                binary=cfg.cli_binary,
                timeout=cfg.cli_timeout,
                isolated=cfg.cli_isolated,
            ))
        except Exception as e:
            logger.error(f"Chat request failed: {e}", exc_info=True)
            return jsonify({"message": "", "error": "Internal server error"}), 500

        if response.error:
            logger.warning(f"Chat backend error ({response.error_kind.value}): {response.error}")
            return jsonify({"message": "", "error": response.error}), 502
        return jsonify({"message": response.result})

    @app.route("/api/assistant/health", methods=["GET"])
    def api_health():
        try:
            status = asyncio.run(check_cli_health(binary=cfg.cli_binary, timeout=cfg.health_timeout))
        except Exception as e:
            logger.error(f"Health check failed: {e}", exc_info=True)
            return jsonify({"available": False, "error": "Health check failed"}), 500
        return jsonify(status.to_dict())

    @app.route("/health")
    def health():
        return jsonify({"status": "ok", "db": cfg.db_path, "cli_binary": cfg.cli_binary})

    return app


def main(argv=None):
    parser = argparse.ArgumentParser(description="Idea Keeper assistant gateway")
    parser.add_argument("--host", default=None, help="Bind address (default from config)")
    parser.add_argument("--port", type=int, default=None, help="Port (default from config)")
    parser.add_argument("--config", default=None, help="Path to ideakeeper.yaml")
    args = parser.parse_args(argv)

    logging.basicConfig(
        format="%(asctime)s [gateway] %(levelname)s: %(message)s",
        level=logging.INFO,
        stream=sys.stdout,
    )

    try:
        cfg = AssistantConfig.load(args.config)
    except ConfigError as e:
        logger.error(f"Config error: {e}")
        sys.exit(1)

    host = args.host or cfg.gateway_host
    port = args.port or cfg.gateway_port
    if host not in ("127.0.0.1", "localhost") and not cfg.api_secret:
        logger.warning(f"Binding to {host} without an api_secret; the chat endpoint is open")

    app = create_app(cfg)
    logger.info(f"Assistant gateway starting on http://{host}:{port}")
    app.run(host=host, port=port, debug=False)


if __name__ == "__main__":
    main()
