import os

# 기본 디렉토리 설정
BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# 경로 설정
LOG_FILE = os.getenv("LOG_FILE", os.path.join(BASE_DIR, "exam_engine.log"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# 서버 설정
DEFAULT_HOST = os.getenv("HOST", "0.0.0.0")
DEFAULT_PORT = int(os.getenv("PORT", "8000"))

# 응시 제한 설정
LIVE_COOLDOWN_MINUTES = int(os.getenv("LIVE_COOLDOWN_MINUTES", "0"))  # live 시리즈 기본 재응시 간격
MIN_QUESTIONS_PER_SERIES = int(os.getenv("MIN_QUESTIONS_PER_SERIES", "2"))

# 채점 설정
MULTI_SELECT_POLICY = os.getenv("MULTI_SELECT_POLICY", "all_or_nothing")  # all_or_nothing | partial

# 리더보드 설정
LEADERBOARD_LIMIT = int(os.getenv("LEADERBOARD_LIMIT", "10"))

# 데모 데이터
SEED_SAMPLE_DATA = os.getenv("SEED_SAMPLE_DATA", "1").lower() in ("1", "true", "yes")
