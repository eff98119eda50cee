"""Entry point for running as a module."""
from crowd_dj.api import app
from crowd_dj.config import env_int, load_local_env_file
import uvicorn

if __name__ == "__main__":
    load_local_env_file()
    port = env_int("PORT", 8000)
    uvicorn.run(app, host="0.0.0.0", port=port)
