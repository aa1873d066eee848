"""Dependency check: run `python test_setup.py` before the first session."""

import importlib

DEPENDENCIES = [
    ("cv2", "OpenCV"),
    ("mediapipe", "MediaPipe"),
    ("numpy", "NumPy"),
    ("pandas", "Pandas"),
    ("matplotlib", "Matplotlib"),
    ("plyer", "Plyer"),
]


def check_dependencies():
    missing = []
    for module, name in DEPENDENCIES:
        try:
            importlib.import_module(module)
            print(f"✅ {name} installed")
        except ImportError:
            print(f"❌ {name} missing")
            missing.append(name)
    return missing


if __name__ == "__main__":
    print("🔍 Checking dependencies...\n")
    missing = check_dependencies()
    if missing:
        print("\n   pip install -e .")
    else:
        print("\n🎯 All dependencies found, you're ready to monitor!")
