
import base64, hashlib, re
from itsdangerous import URLSafeSerializer
from .config import SECRET_KEY

def decode_signature_image(data_url: str) -> bytes:
    # accepts "data:image/png;base64,....." or bare base64
    if "," in data_url:
        data_url = data_url.split(",", 1)[1]
    return base64.b64decode(data_url, validate=True)

def sha256_bytes(b: bytes) -> str:
    return hashlib.sha256(b).hexdigest()

def safe_filename(name: str) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9._-]+", "-", name or "").strip("-.")
    return cleaned or "document"

def make_token(payload: dict) -> str:
    s = URLSafeSerializer(SECRET_KEY, salt="equityboard")
    return s.dumps(payload)

def read_token(token: str) -> dict:
    s = URLSafeSerializer(SECRET_KEY, salt="equityboard")
    return s.loads(token)
