# run.py
from dotenv import load_dotenv
import os
import logging

basedir = os.path.abspath(os.path.dirname(__file__))
# 실행 파일과 같은 디렉터리의 .env 를 먼저 로드합니다.
load_dotenv(dotenv_path=os.path.join(basedir, '.env'))

from froc import create_app

app = create_app()

if __name__ == '__main__':
    host = os.getenv('FLASK_RUN_HOST', '127.0.0.1')
    port = int(os.getenv('FLASK_RUN_PORT', 5000))
    debug = app.config.get('DEBUG', False)
    logging.info(f"FROC 서버 시작: {host}:{port} (backend: {app.config['FROC_BACKEND']})")
    app.run(host=host, port=port, debug=debug)
