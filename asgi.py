"""Top-level ASGI entry that imports the FastAPI app from the backend package.

Run uvicorn from the repository root without `--app-dir` or PYTHONPATH:

  uvicorn asgi:app --reload

"""
import os
import sys

# Ensure backend is on sys.path so `railcore` is importable from a plain checkout
ROOT = os.path.dirname(__file__)
BACKEND_PATH = os.path.join(ROOT, "backend")
if BACKEND_PATH not in sys.path:
    sys.path.insert(0, BACKEND_PATH)

from railcore.main import app  # noqa: E402,F401  (expose ASGI app as `app`)
