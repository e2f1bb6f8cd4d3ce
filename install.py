#!/usr/bin/env python3
"""Cross-platform install script for luna-bot.

Usage:
    python install.py          # Production install
    python install.py --dev    # Development install (includes test tools)
"""

import os
import platform
import shutil
import subprocess
import sys

MIN_PYTHON = (3, 11)


def main() -> None:
    # 1. Check Python version
    if sys.version_info < MIN_PYTHON:
        sys.exit(
            f"Error: Python {MIN_PYTHON[0]}.{MIN_PYTHON[1]}+ is required. "
            f"You have {sys.version_info.major}.{sys.version_info.minor}."
        )

    print(f"Python {sys.version_info.major}.{sys.version_info.minor} detected. OK.")

    dev = "--dev" in sys.argv
    project_dir = os.path.dirname(os.path.abspath(__file__))
    venv_dir = os.path.join(project_dir, ".venv")
    is_windows = platform.system() == "Windows"

    bin_dir = "Scripts" if is_windows else "bin"
    pip = os.path.join(venv_dir, bin_dir, "pip")

    # 2. Create virtual environment
    if not os.path.isdir(venv_dir):
        print("Creating virtual environment...")
        subprocess.check_call([sys.executable, "-m", "venv", venv_dir])
    else:
        print("Virtual environment already exists.")

    # 3. Upgrade pip
    print("Upgrading pip...")
    subprocess.check_call([pip, "install", "--upgrade", "pip"])

    # 4. Install project
    target = ".[dev]" if dev else "."
    mode = "development" if dev else "standard"
    print(f"Installing luna-bot ({mode})...")
    subprocess.check_call([pip, "install", "-e", target] if dev else [pip, "install", target], cwd=project_dir)

    # 5. Create data directory (conversations.json lives here)
    os.makedirs(os.path.join(project_dir, "data"), exist_ok=True)

    # 6. Copy config files if missing
    for src, dst in [("config.example.yaml", "config.yaml"), (".env.example", ".env")]:
        src_path = os.path.join(project_dir, src)
        dst_path = os.path.join(project_dir, dst)
        if not os.path.exists(dst_path) and os.path.exists(src_path):
            shutil.copy(src_path, dst_path)
            print(f"Created {dst} from {src}")
        elif os.path.exists(dst_path):
            print(f"{dst} already exists, skipping.")

    # 7. Print instructions
    activate_cmd = r".\.venv\Scripts\activate" if is_windows else "source .venv/bin/activate"

    print()
    print("=" * 50)
    print("  luna-bot installation complete!")
    print("=" * 50)
    print()
    print("Next steps:")
    print("  1. Edit .env - set your Discord token, channel ids and Gemini keys:")
    print("       DISCORD_TOKEN=...")
    print("       CHAT_CHANNEL_ID=...   IMAGE_CHANNEL_ID=...")
    print("       GEMINI_API_KEY_1=...  (up to GEMINI_API_KEY_3)")
    print("  2. Activate the virtual environment:")
    print(f"       {activate_cmd}")
    print("  3. Check the config:")
    print("       python -m luna_bot config-check")
    print("  4. Start the bot:")
    print("       python -m luna_bot")
    print()


if __name__ == "__main__":
    main()
