"""
Exporter Entry Point

Allows execution via: python -m drawexport

Delegates to the scheduler for all execution modes (scheduled and RUN_ONCE).
"""

from drawexport.exporter.scheduler import run

if __name__ == "__main__":
    run()
