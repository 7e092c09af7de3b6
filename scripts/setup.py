#!/usr/bin/env python3
"""
Setup script for render-export.
Installs the package, Playwright and the Chromium browser it drives.

    python scripts/setup.py [--with-tests]
"""

import subprocess
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent


def install_steps(with_tests):
    target = f"{ROOT}[test]" if with_tests else str(ROOT)
    return [
        ("render-export", [sys.executable, "-m", "pip", "install", "-e", target]),
        ("Chromium browser", [sys.executable, "-m", "playwright", "install", "chromium"]),
    ]


def install(name, cmd):
    """Run one install step, echoing its output only when it fails."""
    print(f"\n📦 Installing {name}...")
    proc = subprocess.run(cmd, capture_output=True, text=True)
    if proc.returncode != 0:
        print(f"❌ Installing {name} failed (exit {proc.returncode})")
        print(proc.stderr or proc.stdout)
        return False
    print(f"✅ {name} installed")
    return True


def main():
    print("🚀 Setting up render-export...")

    if sys.version_info < (3, 9):
        print("❌ Python 3.9+ required")
        sys.exit(1)

    for name, cmd in install_steps("--with-tests" in sys.argv[1:]):
        if not install(name, cmd):
            sys.exit(1)

    print("\n✅ Setup complete! You can now run:")
    print("   python -m render_export --server-url <url> --workspace <id> --principal <id> "
          "dashboard --dashboard <id> --width 297 --height 210")


if __name__ == "__main__":
    main()
