#!/usr/bin/env python3
# -*- coding: utf-8 -*-

import os
import sys
import json
import copy
import atexit
import logging
from logging.handlers import TimedRotatingFileHandler

# Add current directory to Python path to ensure modules can be imported
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from flask import Flask
from flask_cors import CORS

from video_db import VideoDatabase
from modules.transcode.config import TranscodeConfig
from modules.transcode.manager import get_transcode_manager
from modules.transcode.api import init_transcode_manager, register_routes

# Configuration file path
CONFIG_FILE = "config/config.json"

DEFAULT_CONFIG = {
    "server": {
        "host": "0.0.0.0",
        "port": 8080
    },
    "db_file": "data/videos.db",
    "transcode": {
        "upload_dir": "uploads",
        "segment_duration": 6,
        "ffmpeg_path": "ffmpeg",
        "ffprobe_path": "ffprobe",
        "x264_preset": "fast",
        "thumbnail_interval": 10,
        "thumbnail_width": 320,
        "max_concurrent_jobs": 2,
        "probe_timeout": 30,
        "encode_timeout": None,
        "max_upload_size_mb": 1024,
        "job_retention": 3600
    }
}


def setup_logging(log_dir='logs'):
    """Configure root logger: console plus a daily rotated file"""
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    # 配置较少日志输出的模块
    for module in ['urllib3', 'werkzeug']:
        logging.getLogger(module).setLevel(logging.WARNING)

    os.makedirs(log_dir, exist_ok=True)

    # 添加按日期滚动的文件处理器
    file_handler = TimedRotatingFileHandler(
        os.path.join(log_dir, 'webserver.log'),
        when='midnight',
        interval=1,
        backupCount=3  # 保留3天日志
    )
    file_handler.setFormatter(logging.Formatter('%(asctime)s - %(levelname)s - %(message)s'))
    file_handler.setLevel(logging.INFO)
    logging.getLogger().addHandler(file_handler)


def _merge(base, override):
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


def load_config(config_file=CONFIG_FILE):
    """Load configuration file

    Values from the file are merged over the defaults; a default file is
    written when none exists. UPLOAD_DIR, DB_FILE and PORT environment
    variables take precedence over both.
    """
    config = copy.deepcopy(DEFAULT_CONFIG)
    try:
        if os.path.exists(config_file):
            with open(config_file, 'r', encoding='utf-8') as f:
                _merge(config, json.load(f))
                logging.info(f"Loaded configuration file: {config_file}")
        else:
            # Create config directory if it doesn't exist
            config_dir = os.path.dirname(config_file)
            if config_dir:
                os.makedirs(config_dir, exist_ok=True)
            # Save default config
            with open(config_file, 'w', encoding='utf-8') as f:
                json.dump(config, f, ensure_ascii=False, indent=2)
                logging.info(f"Created default configuration file: {config_file}")
    except (OSError, ValueError) as e:
        logging.error(f"Failed to load configuration file: {str(e)}")

    # 优先使用环境变量
    if os.environ.get("UPLOAD_DIR"):
        config["transcode"]["upload_dir"] = os.environ["UPLOAD_DIR"]
        logging.info(f"Using upload directory from environment: {config['transcode']['upload_dir']}")
    if os.environ.get("DB_FILE"):
        config["db_file"] = os.environ["DB_FILE"]
        logging.info(f"Using database file from environment: {config['db_file']}")
    if os.environ.get("PORT"):
        config["server"]["port"] = int(os.environ["PORT"])

    return config


def create_app(app_config=None, ffprobe_runner=None, ffmpeg_runner=None):
    """Build the Flask application

    Args:
        app_config: configuration dict, as returned by load_config()
        ffprobe_runner: optional FFprobeRunner replacement
        ffmpeg_runner: optional FFmpegRunner replacement

    Returns:
        Flask application; the TranscodeManager is kept in
        app.extensions['transcode_manager']
    """
    if app_config is None:
        app_config = load_config()

    transcode_config = TranscodeConfig.from_app_config(app_config)
    os.makedirs(transcode_config.upload_dir, exist_ok=True)

    db_file = os.path.abspath(app_config.get("db_file") or DEFAULT_CONFIG["db_file"])
    db = VideoDatabase(db_file=db_file)
    logging.info(f"Using database file: {db_file}")

    manager = get_transcode_manager(
        transcode_config, db, ffprobe_runner=ffprobe_runner, ffmpeg_runner=ffmpeg_runner
    )
    init_transcode_manager(manager)

    # Initialize Flask application
    app = Flask(__name__)
    CORS(app)  # Enable CORS
    app.config['MAX_CONTENT_LENGTH'] = transcode_config.max_upload_bytes
    app.extensions['transcode_manager'] = manager

    @app.teardown_appcontext
    def close_db(exception):
        # 请求线程的 sqlite 连接随请求结束关闭
        db.close()

    register_routes(app)
    return app


# Start the server
if __name__ == '__main__':
    setup_logging()
    CURRENT_CONFIG = load_config()
    app = create_app(CURRENT_CONFIG)
    atexit.register(app.extensions['transcode_manager'].stop, 5)

    server_config = CURRENT_CONFIG.get("server", {})
    app.run(
        host=server_config.get("host", "0.0.0.0"),
        port=int(server_config.get("port", 8080)),
        debug=False,
        threaded=True
    )
