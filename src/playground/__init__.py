"""
play-sandbox: disposable home environments for an editor.

Each sandbox is a directory under the sandbox root holding a cloned configuration
repository; the editor is launched with its home variable pointed at that directory.
The most recently launched sandbox can be restarted or promoted to the default through
generated wrapper scripts.

Importing this package has no side effects (no config loading, no logging init).
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
