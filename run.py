"""
Corridor priority engine entry point
Run:   python run.py
Open:  http://localhost:8000/docs
"""
import logging
import os
import sys
from pathlib import Path

import uvicorn
from dotenv import load_dotenv


def check_dependencies():
    """Required packages"""
    required = ["fastapi", "uvicorn", "pandas", "numpy", "pydantic"]
    missing = []
    for pkg in required:
        try:
            __import__(pkg)
        except ImportError:
            missing.append(pkg)

    if missing:
        print(f"[ERROR] Missing packages: {', '.join(missing)}")
        print("Install them with:")
        print("  pip install -e .")
        sys.exit(1)


def check_config():
    """Warn about settings that point at files that do not exist"""
    for var in ("CORRIDOR_STATIONS_CSV", "CORRIDOR_MUNICIPALITIES_CSV"):
        csv_path = os.getenv(var)
        if csv_path and not Path(csv_path).exists():
            print(f"[WARN]  {var} not found: {csv_path}")
            print("The bundled corridor data will not be used; startup will fail.")
            print()


def main():
    print("=" * 60)
    print("Corridor Priority & Fragility Engine")
    print("=" * 60)
    print()

    load_dotenv()
    check_dependencies()
    check_config()

    host = os.getenv("HOST", "127.0.0.1")
    port = int(os.getenv("PORT", "8000"))
    reload = os.getenv("RELOAD", "True").lower() == "true"
    log_level = os.getenv("LOG_LEVEL", "info").lower()

    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    url = f"http://{host}:{port}"
    print(f"[*] Server: {url}")
    print(f"[*] Project directory: {Path.cwd()}")
    print(f"[*] Auto reload: {'on' if reload else 'off'}")
    print()
    print("Press Ctrl+C to stop.")
    print("=" * 60)
    print()

    try:
        uvicorn.run(
            "api.app:app",
            host=host,
            port=port,
            reload=reload,
            reload_dirs=["api", "corridor"],
            log_level=log_level,
        )
    except KeyboardInterrupt:
        print("\n\n[*] Shutting down.")
    except Exception as e:
        print(f"\n[ERROR] Server failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
