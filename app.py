from flask import Flask, jsonify, request
import asyncio
import time
from threading import Thread
from typing import Optional

from ble_manager import STATUS_WAITING, SensorPipeline
from config import SensorConfig
from logging_setup import get_logger, setup_logging

logger = get_logger(__name__)

# Event loop running the BLE pipeline
loop: Optional[asyncio.AbstractEventLoop] = None
loop_thread: Optional[Thread] = None


def start_event_loop():
    """Start the asyncio event loop in a separate thread"""
    global loop
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    loop.run_forever()


def start_pipeline(pipeline: SensorPipeline):
    """Run the pipeline on the background loop; returns its future"""
    global loop_thread
    if loop_thread is None:
        loop_thread = Thread(target=start_event_loop, daemon=True)
        loop_thread.start()
        while loop is None:
            time.sleep(0.05)
    return asyncio.run_coroutine_threadsafe(pipeline.run(), loop)


def create_app(pipeline: SensorPipeline) -> Flask:
    """Build the read-only display API around a pipeline"""
    app = Flask(__name__)
    recorder = pipeline.recorder

    @app.route('/')
    def home():
        return jsonify({
            "status": "Sensor recorder API is running",
            "endpoints": ["/status", "/reading", "/history", "/recording/start", "/recording/stop"]
        })

    @app.route('/status', methods=['GET'])
    def status():
        """Connection, recording and latest reading"""
        try:
            return jsonify(pipeline.status())
        except Exception as e:
            logger.exception("[API] /status failed")
            return jsonify({"error": str(e)}), 500

    @app.route('/reading', methods=['GET'])
    def latest_reading():
        """Latest decoded reading"""
        try:
            reading = recorder.latest_reading
            if reading is None:
                return jsonify({"reading": None, "message": STATUS_WAITING})
            return jsonify({
                "reading": reading.to_dict(),
                "raw": recorder.latest_payload
            })
        except Exception as e:
            logger.exception("[API] /reading failed")
            return jsonify({"error": str(e)}), 500

    @app.route('/history', methods=['GET'])
    def history():
        """Recent readings, oldest first"""
        try:
            limit = request.args.get('limit', 10, type=int)
            if limit < 0:
                return jsonify({"error": "limit must be a non-negative integer"}), 400
            readings = [reading.to_dict() for reading in recorder.get_history(limit)]
            return jsonify({"readings": readings, "count": len(readings)})
        except Exception as e:
            logger.exception("[API] /history failed")
            return jsonify({"error": str(e)}), 500

    @app.route('/recording/start', methods=['POST'])
    def recording_start():
        recorder.start_recording()
        return jsonify({"recording": recorder.recording})

    @app.route('/recording/stop', methods=['POST'])
    def recording_stop():
        recorder.stop_recording()
        return jsonify({"recording": recorder.recording})

    return app


if __name__ == '__main__':
    setup_logging()
    config = SensorConfig.load()
    pipeline = SensorPipeline(config)
    start_pipeline(pipeline)
    # Run on all interfaces so the display can reach it
    create_app(pipeline).run(host=config.api_host, port=config.api_port)
