"""Environment configuration loaded from .env file."""

import os
from dotenv import load_dotenv

load_dotenv()

# Spotify app credentials.  Optional here: credentials saved through the
# settings page (cookie) take precedence over these.
SPOTIFY_CLIENT_ID: str = os.environ.get("SPOTIFY_CLIENT_ID", "")
SPOTIFY_CLIENT_SECRET: str = os.environ.get("SPOTIFY_CLIENT_SECRET", "")
SPOTIFY_REDIRECT_URI: str = os.environ.get(
    "SPOTIFY_REDIRECT_URI", "http://127.0.0.1:3000/api/spotify/callback"
)

# Frontend URL for CORS & redirects after login/logout
FRONTEND_URL: str = os.environ.get("FRONTEND_URL", "http://127.0.0.1:3000")

# Signing key for cookie payloads – generate a strong random value for production
JWT_SECRET: str = os.environ.get("JWT_SECRET", "change-me-to-a-long-random-secret-value")

COOKIE_SECURE: bool = os.environ.get("COOKIE_SECURE", "false").lower() in ("1", "true", "yes")

# Safety cap on the number of saved tracks pulled per library fetch
MAX_SONGS: int = int(os.environ.get("MAX_SONGS", "2000"))
