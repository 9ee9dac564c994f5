"""
Script to run the daily weather ETL stages
"""

import sys
import os

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from pipeline.cli import main


if __name__ == "__main__":
    sys.exit(main())
