# timetable/app.py
import atexit
import datetime
import logging

from flask import Flask, jsonify, request

from timetable.auth import DriveAuth
from timetable.config import load_settings
from timetable.drive import DriveSync
from timetable.errors import BootstrapError
from timetable.service import Timetable
from timetable.state import parse_date_input
from timetable.storage import LocalStore

logger = logging.getLogger(__name__)


def build_store(settings):
    if settings.backend == "drive":
        auth = DriveAuth(
            settings.client_id,
            client_secret=settings.client_secret,
            api_key=settings.api_key,
            refresh_token=settings.refresh_token,
            token_path=settings.token_file,
            redirect_uri=settings.redirect_uri,
            timeout=settings.http_timeout,
        )
        return DriveSync(auth, save_delay=settings.save_delay)
    return LocalStore(settings.data_dir)


def _date_arg(value):
    """None when absent, False when present but unparseable."""
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        return False
    return parse_date_input(value) or False


def _int_arg(name):
    raw = request.args.get(name)
    if raw in (None, ""):
        return None
    try:
        return int(raw)
    except ValueError:
        return False


def create_app(settings=None, timetable=None):
    app = Flask(__name__)
    if timetable is None:
        settings = settings or load_settings()
        timetable = Timetable.boot(build_store(settings))
    app.config["TIMETABLE"] = timetable

    @app.route("/state", methods=["GET"])
    def get_state():
        return jsonify({"state": timetable.snapshot(), "synced": timetable.synced})

    @app.route("/tasks", methods=["GET"])
    def get_tasks():
        # date in DD.MM.YYYY or YYYY-MM-DD; defaults to today
        date_iso = _date_arg(request.args.get("date"))
        if date_iso is False:
            return jsonify({"error": "invalid date format"}), 400
        date_iso = date_iso or datetime.date.today().isoformat()
        return jsonify({"date": date_iso, "tasks": timetable.tasks_for(date_iso)})

    @app.route("/tasks", methods=["POST"])
    def post_task():
        req = request.get_json(silent=True) or {}
        title = str(req.get("title") or "").strip()
        if not title:
            return jsonify({"error": "title required"}), 400
        task = timetable.add(title)
        return jsonify({"status": "ok", "task": task}), 201

    @app.route("/tasks/<task_id>", methods=["GET"])
    def get_task(task_id):
        details = timetable.task_details(task_id)
        if details is None:
            return jsonify({"error": "task not found"}), 404
        return jsonify({"task": details})

    @app.route("/tasks/<task_id>", methods=["DELETE"])
    def del_task(task_id):
        if not timetable.remove(task_id):
            return jsonify({"error": "task not found"}), 404
        return jsonify({"status": "deleted"})

    @app.route("/tasks/<task_id>/toggle", methods=["POST"])
    def toggle_task(task_id):
        req = request.get_json(silent=True) or {}
        date_iso = _date_arg(req.get("date"))
        if date_iso is False:
            return jsonify({"error": "invalid date format"}), 400
        done = timetable.toggle(task_id, date_iso)
        if done is None:
            return jsonify({"error": "task not found"}), 404
        return jsonify({"status": "ok", "done": done, "progress": timetable.progress()})

    @app.route("/tasks/<task_id>/dates", methods=["GET"])
    def get_task_dates(task_id):
        start = _date_arg(request.args.get("start"))
        end = _date_arg(request.args.get("end"))
        if not start or not end:
            return jsonify({"error": "start and end dates required"}), 400
        return jsonify({"dates": timetable.dates(task_id, start, end)})

    @app.route("/calendar", methods=["GET"])
    def get_calendar():
        year, month = _int_arg("year"), _int_arg("month")
        if year is False or month is False or (month is not None and not 1 <= month <= 12):
            return jsonify({"error": "invalid year or month"}), 400
        if year is not None and not 1 <= year <= 9999:
            return jsonify({"error": "invalid year or month"}), 400
        task_id = request.args.get("task_id") or None
        today = datetime.date.today()
        year, month = year or today.year, month or today.month
        return jsonify({
            "year": year,
            "month": month,
            "task_id": task_id,
            "cells": timetable.calendar(task_id, year, month),
        })

    @app.route("/progress", methods=["GET"])
    def get_progress():
        return jsonify({"date": datetime.date.today().isoformat(), "percent": timetable.progress()})

    @app.route("/auth/callback", methods=["GET"])
    def auth_callback():
        auth = getattr(timetable.store, "auth", None)
        if auth is None:
            return jsonify({"error": "drive backend not configured"}), 404
        error = request.args.get("error")
        if error:
            return jsonify({"error": f"consent refused: {error}"}), 400
        try:
            auth.complete_consent(request.args.get("code", ""), state=request.args.get("state"))
        except BootstrapError as e:
            logger.warning("consent callback failed: %s", e)
            return jsonify({"error": str(e)}), 400
        if timetable.persisting:
            # push whatever was edited while the token was missing
            timetable.store.request_save(timetable.snapshot())
        return jsonify({"status": "authorized"})

    return app


def main():
    settings = load_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = create_app(settings)
    atexit.register(app.config["TIMETABLE"].close)
    logger.info("Timetable API on %s:%s (%s backend)", settings.host, settings.port, settings.backend)
    app.run(host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
