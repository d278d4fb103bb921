import os

# 기본 디렉토리 설정
BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# 경로 설정
STATIC_DIR = os.path.join(BASE_DIR, "static")
LOG_FILE = os.path.join(BASE_DIR, "launch.log")

# 서버 설정
DEFAULT_HOST = os.getenv("HOST", "127.0.0.1")
DEFAULT_PORT = int(os.getenv("PORT", "8000"))

# 원격 시험 서비스 설정
EXAM_API_URL = os.getenv("EXAM_API_URL", "http://localhost:8080/api")
EXAM_API_TOKEN = os.getenv("EXAM_API_TOKEN", "")
HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "10"))

# 타이머 설정
TICK_INTERVAL_SECONDS = float(os.getenv("TICK_INTERVAL_SECONDS", "1"))  # 틱 1회 = 시험 시간 1초

# 세션 설정
SESSION_TTL = int(os.getenv("SESSION_TTL", "3600"))                            # 1시간
SESSION_CLEANUP_INTERVAL = int(os.getenv("SESSION_CLEANUP_INTERVAL", "300"))   # 5분마다 정리
