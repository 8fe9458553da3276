"""
Validate project setup: Python version, dependencies, API keys, storage path.
"""

import os
import sys

from dotenv import load_dotenv
from rich.console import Console

console = Console()


def check_setup():
    """Check if the project is set up correctly."""
    console.print("Checking project setup...\n")
    issues = []

    if sys.version_info < (3, 9):
        issues.append("Python 3.9+ required (current: {}.{})".format(
            sys.version_info.major, sys.version_info.minor))
    else:
        console.print("[green]✓[/green] Python {}.{}.{}".format(
            sys.version_info.major, sys.version_info.minor, sys.version_info.micro))

    required = ["pydantic", "tiktoken", "rich", "dotenv", "requests", "langchain_google_genai", "langchain_core"]
    for name in required:
        try:
            __import__(name)
            console.print("[green]✓[/green] {} installed".format(name))
        except ImportError:
            issues.append("Missing package: {}".format(name))

    load_dotenv()
    api_key = os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY")
    if api_key:
        console.print("[green]✓[/green] GEMINI_API_KEY or GOOGLE_API_KEY found")
    else:
        issues.append("Set GEMINI_API_KEY (or GOOGLE_API_KEY) in .env")

    if os.getenv("GITHUB_TOKEN"):
        console.print("[green]✓[/green] GITHUB_TOKEN found")
    else:
        # Unauthenticated GitHub calls still work, with a 60 requests/hour budget
        console.print("[yellow]![/yellow] GITHUB_TOKEN not set (unauthenticated rate limit applies)")

    storage_path = os.getenv("OPENBOOK_STORAGE_PATH") or "openbook_storage"
    parent = os.path.dirname(os.path.abspath(storage_path))
    if os.access(parent, os.W_OK):
        console.print("[green]✓[/green] Storage path {} is writable".format(storage_path))
    else:
        issues.append("Storage path not writable: {}".format(storage_path))

    console.print("\n" + "=" * 50)
    if issues:
        console.print("[red]❌ Setup issues:[/red]")
        for i in issues:
            console.print("  • {}".format(i))
        console.print("\nFix: pip install -e . ; set GEMINI_API_KEY in .env")
        return False
    console.print("[green]✓ Setup OK.[/green] Run: python demos/demo_cli.py <github-username>")
    return True


if __name__ == "__main__":
    success = check_setup()
    sys.exit(0 if success else 1)
