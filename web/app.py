#!/usr/bin/env python3

import asyncio
import logging
import time
from dataclasses import asdict

from flask import Flask, jsonify, request

from deepwork.config import get_config_manager
from deepwork.errors import GenerationUnavailable
from deepwork.models import INSIGHT_KINDS
from deepwork.service import build_service
from deepwork.timeparser import TimeParser

logger = logging.getLogger(__name__)

app = Flask(__name__)

# Initialize configuration
config_manager = get_config_manager()


def get_service():
    """Return the insight service, building it on first use.

    Tests install their own service under app.config['INSIGHT_SERVICE'].
    """
    service = app.config.get('INSIGHT_SERVICE')
    if service is None:
        service = build_service(config_manager)
        app.config['INSIGHT_SERVICE'] = service
    return service


def parse_period_args(kind):
    """Validate kind/date/activity query parameters.

    Returns:
        (reference_time, containing, activity, error_response)
    """
    if kind not in INSIGHT_KINDS:
        return None, False, None, (jsonify({"error": f"Unknown insight kind: {kind}"}), 400)

    activity = request.args.get('activity')
    if kind == 'activity' and not activity:
        return None, False, None, (jsonify({"error": "'activity' parameter required"}), 400)

    date_text = request.args.get('date')
    if not date_text:
        return None, False, activity, None
    try:
        reference = TimeParser().parse_date(date_text)
    except ValueError:
        return None, False, None, (jsonify({"error": f"Invalid date: {date_text}"}), 400)
    return reference, True, activity, None


def window_json(window):
    return {
        "kind": window.kind,
        "activity": window.activity,
        "start": window.start,
        "end": window.end,
        "label": window.label,
    }


@app.route('/api/insights/<kind>')
def api_insight(kind):
    """Get the insight for a period, generating it if the cache is stale."""
    reference, containing, activity, error = parse_period_args(kind)
    if error:
        return error

    force = request.args.get('force', '').lower() in ('1', 'true', 'yes')
    try:
        result = asyncio.run(get_service().insight_for(
            kind,
            reference_time=reference,
            activity=activity,
            force=force,
            containing=containing,
        ))
    except GenerationUnavailable as e:
        return jsonify({"error": f"Insight unavailable: {e}"}), 503

    return jsonify({
        "text": result.text,
        "window": window_json(result.window),
        "from_cache": result.from_cache,
        "stale": result.stale,
        "generated_at": result.generated_at,
        "fingerprint": result.fingerprint,
    })


@app.route('/api/summary/<kind>')
def api_summary(kind):
    """Get aggregated statistics for a period without generating text."""
    reference, containing, activity, error = parse_period_args(kind)
    if error:
        return error

    service = get_service()
    window = service.window(kind, reference, activity, containing)
    summary = asyncio.run(service.summary_for(kind, window=window))
    return jsonify({"window": window_json(window), "summary": asdict(summary)})


@app.route('/api/sessions', methods=['GET'])
def api_sessions():
    """List sessions whose start time is in [start, end)."""
    start = request.args.get('start')
    end = request.args.get('end')
    if not start or not end:
        return jsonify({"error": "Both 'start' and 'end' parameters required"}), 400

    try:
        start_ts = int(start)
        end_ts = int(end)
    except ValueError:
        return jsonify({"error": "Start and end must be valid Unix timestamps"}), 400

    if start_ts >= end_ts:
        return jsonify({"error": "Start timestamp must be before end timestamp"}), 400

    sessions = get_service().storage.get_sessions_in_range(
        start_ts, end_ts, request.args.get('activity')
    )
    return jsonify({"sessions": sessions, "count": len(sessions)})


@app.route('/api/sessions', methods=['POST'])
def api_create_session():
    """Record a completed focus session."""
    data = request.get_json(silent=True) or {}

    activity = data.get('activity_type')
    if not activity or not isinstance(activity, str):
        return jsonify({"error": "'activity_type' is required"}), 400

    try:
        duration = int(data['duration'])
        end_time = int(data.get('end_time') or time.time())
        start_time = int(data.get('start_time') or end_time - duration)
    except (KeyError, TypeError, ValueError):
        return jsonify({"error": "'duration' must be an integer number of seconds"}), 400

    if duration <= 0:
        return jsonify({"error": "'duration' must be positive"}), 400
    if end_time < start_time:
        return jsonify({"error": "'end_time' must not be before 'start_time'"}), 400

    session_id = get_service().storage.save_session(
        activity, duration, start_time, end_time, data.get('description')
    )
    return jsonify({"id": session_id}), 201


@app.route('/api/activities')
def api_activities():
    return jsonify({"activities": get_service().storage.get_activity_types()})


if __name__ == '__main__':
    web_cfg = config_manager.config.web
    app.run(host=web_cfg.host, port=web_cfg.port)
