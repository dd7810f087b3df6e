"""
QuickEdit Backend Server

Local HTTP server exposing job submission and read-only status polling.
Runs on localhost:5680 by default.
"""

import json
import logging
import logging.handlers
import os
import sys
import time

from flask import Flask, Response, jsonify, request
from flask_cors import CORS

from . import __version__
from .core.errors import NotFoundError
from .core.service import JobService, build_service
from .core.stages import get_available_intensities, get_available_qualities, get_available_styles
from .utils.config import QUICKEDIT_HOME, PipelineConfig, get_preset
from .utils.media import is_remote

logger = logging.getLogger("quickedit")

LOG_DIR = QUICKEDIT_HOME
LOG_FILE = os.path.join(LOG_DIR, "server.log")

# Seconds between Server-Sent Event snapshots
STREAM_INTERVAL = 0.5


# ---------------------------------------------------------------------------
# Logging Setup
# ---------------------------------------------------------------------------
def setup_logging(log_file: str = LOG_FILE, console: bool = True) -> None:
    """
    Rotating file log at DEBUG, plus stdout at INFO when ``console`` is set.

    The CLI passes console=False so log lines do not break its progress display.
    Safe to call twice; only the first call configures handlers.
    """
    if getattr(logger, "_quickedit_configured", False):
        return
    os.makedirs(os.path.dirname(log_file), exist_ok=True)
    logger.setLevel(logging.DEBUG)

    file_handler = logging.handlers.RotatingFileHandler(
        log_file, maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8"
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s [%(levelname)s] %(threadName)s %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
    ))
    logger.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.INFO)
        console_handler.setFormatter(logging.Formatter("  %(message)s"))
        logger.addHandler(console_handler)
    logger._quickedit_configured = True


def _status_view(job) -> dict:
    """Polling shape: status, progress, current step and output once completed."""
    view = {
        "id": job.id,
        "status": job.status.value,
        "progress": job.progress,
        "current_step": job.current_step,
        "message": job.message,
    }
    if job.output_ref:
        view["output_ref"] = job.output_ref
    return view


def create_app(service: JobService) -> Flask:
    """Build the Flask app around a JobService."""
    app = Flask(__name__)
    CORS(app, origins=["*"])
    app.config["JOB_SERVICE"] = service

    # -----------------------------------------------------------------------
    # Health / Info
    # -----------------------------------------------------------------------
    @app.route("/health", methods=["GET"])
    def health():
        orch = service.orchestrator
        caps = {
            "ffmpeg": orch.runner.available(orch.config.ffmpeg_path),
            "ffprobe": orch.runner.available(orch.config.ffprobe_path),
        }
        return jsonify({"status": "ok", "version": __version__, "capabilities": caps})

    @app.route("/styles", methods=["GET"])
    def styles():
        return jsonify({
            "styles": get_available_styles(),
            "intensities": get_available_intensities(),
            "qualities": get_available_qualities(),
        })

    # -----------------------------------------------------------------------
    # Submission
    # -----------------------------------------------------------------------
    @app.route("/jobs", methods=["POST"])
    def submit_job():
        """Queue a source video for processing."""
        data = request.get_json(force=True, silent=True)
        if data is None:
            data = {}
        if not isinstance(data, dict):
            return jsonify({"error": "Request body must be a JSON object"}), 400
        source_ref = str(data.get("source_ref") or data.get("filepath") or "").strip()

        if not source_ref:
            return jsonify({"error": "No file path provided"}), 400
        if not is_remote(source_ref) and not os.path.isfile(source_ref):
            return jsonify({"error": f"File not found: {source_ref}"}), 400

        preset = data.get("preset")
        if preset:
            if not isinstance(preset, str):
                return jsonify({"error": "preset must be a string"}), 400
            try:
                style_config = get_preset(preset).to_dict()
            except ValueError as e:
                return jsonify({"error": str(e)}), 400
            style_config.update({k: data[k] for k in ("style", "intensity", "quality") if data.get(k)})
        else:
            style_config = {k: data.get(k) for k in ("style", "intensity", "quality")}

        job_id = service.submit(source_ref, style_config)
        return jsonify({"job_id": job_id, "status": "queued"}), 202

    # -----------------------------------------------------------------------
    # Job Status
    # -----------------------------------------------------------------------
    @app.route("/status/<job_id>", methods=["GET"])
    def job_status(job_id):
        """Check the status of a processing job."""
        try:
            job = service.get(job_id)
        except NotFoundError:
            return jsonify({"error": "Job not found"}), 404
        return jsonify(_status_view(job))

    @app.route("/jobs/<job_id>", methods=["GET"])
    def job_detail(job_id):
        try:
            job = service.get(job_id)
        except NotFoundError:
            return jsonify({"error": "Job not found"}), 404
        return jsonify(job.to_dict())

    @app.route("/jobs/<job_id>/history", methods=["GET"])
    def job_history(job_id):
        try:
            entries = service.history(job_id)
        except NotFoundError:
            return jsonify({"error": "Job not found"}), 404
        return jsonify({"job_id": job_id, "history": [e.to_dict() for e in entries]})

    @app.route("/jobs/<job_id>/output", methods=["GET"])
    def job_output(job_id):
        """Locate the final artifact. Bytes are served by the delivery layer, not here."""
        try:
            job = service.get(job_id)
        except NotFoundError:
            return jsonify({"error": "Job not found"}), 404
        if job.output_ref is None:
            return jsonify({"error": "Video processing not complete", "status": job.status.value}), 409
        return jsonify({"job_id": job.id, "output_ref": job.output_ref})

    @app.route("/jobs", methods=["GET"])
    def list_jobs():
        """List recent jobs, newest first."""
        try:
            limit = int(request.args.get("limit", 100))
        except ValueError:
            return jsonify({"error": "limit must be an integer"}), 400
        return jsonify([j.to_dict() for j in service.list_jobs(limit=limit)])

    # -----------------------------------------------------------------------
    # Server-Sent Events (SSE) job stream
    # -----------------------------------------------------------------------
    @app.route("/stream/<job_id>", methods=["GET"])
    def stream_job(job_id):
        """Stream job status via Server-Sent Events until it finishes."""
        def generate():
            last = None
            while True:
                try:
                    job = service.get(job_id)
                except NotFoundError:
                    yield f"data: {json.dumps({'status': 'not_found', 'error': 'Job not found'})}\n\n"
                    break
                view = _status_view(job)
                if view != last:
                    yield f"data: {json.dumps(view)}\n\n"
                    last = view
                if job.is_terminal:
                    break
                time.sleep(STREAM_INTERVAL)

        resp = Response(generate(), mimetype="text/event-stream")
        resp.headers["Cache-Control"] = "no-cache"
        resp.headers["X-Accel-Buffering"] = "no"
        return resp

    @app.errorhandler(500)
    def internal_error(e):
        logger.exception("Unhandled server error")
        return jsonify({"error": "Internal server error"}), 500

    return app


# ---------------------------------------------------------------------------
# Server Startup
# ---------------------------------------------------------------------------
def run_server(host="127.0.0.1", port=5680, debug=False, config=None):
    """Start the QuickEdit backend server."""
    setup_logging()
    config = config or PipelineConfig.from_env()
    service = build_service(config)
    recovered = service.recover()
    if recovered:
        logger.info(f"Recovered {len(recovered)} interrupted job(s)")

    app = create_app(service)
    print("")
    print(f"  QuickEdit Backend Server v{__version__}")
    print(f"  Listening on http://{host}:{port}")
    print(f"  Jobs database: {config.db_path}")
    print(f"  Log file: {LOG_FILE}")
    print("  Press Ctrl+C to stop")
    print("")
    logger.info(f"Server starting on http://{host}:{port} (pid={os.getpid()})")
    app.run(host=host, port=port, debug=debug, threaded=True, use_reloader=False)


if __name__ == "__main__":
    import argparse
    parser = argparse.ArgumentParser(description="QuickEdit Backend Server")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind to")
    parser.add_argument("--port", type=int, default=5680, help="Port to listen on")
    parser.add_argument("--debug", action="store_true", help="Enable debug mode")
    args = parser.parse_args()
    run_server(host=args.host, port=args.port, debug=args.debug)
