#!/usr/bin/env python
"""
Load Guidelines - Seed the guideline store.

Usage:
    # Built-in 10DLC compliance rules
    python scripts/load_guidelines.py

    # Also load <business_type>_guidelines.txt files from a directory
    python scripts/load_guidelines.py --directory data/guidelines

    # Target Pinecone instead of the configured backend
    python scripts/load_guidelines.py --backend pinecone
"""

import sys
import os
import click
import logging

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dlc_review import config
from dlc_review.guidelines import GuidelineLoader, create_guideline_store
from dlc_review.llm import LocalModel, OpenAIModel

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(),
    ]
)
logger = logging.getLogger(__name__)


@click.command()
@click.option('--directory', '-d', default=None,
              help='Directory of .txt guideline files')
@click.option('--backend', '-b', default=config.GUIDELINE_STORE,
              type=click.Choice(['memory', 'pinecone']),
              help='Guideline store backend')
@click.option('--local-embeddings', is_flag=True,
              help='Use the fixed-seed local embedder instead of OpenAI')
@click.option('--skip-rules', is_flag=True,
              help='Do not load the built-in compliance rules')
def main(directory: str, backend: str, local_embeddings: bool, skip_rules: bool):
    """Split guideline texts into chunks and index them."""
    embedder = LocalModel() if local_embeddings else OpenAIModel()
    store = create_guideline_store(embedder, backend)
    loader = GuidelineLoader(store)

    total = 0
    if not skip_rules:
        total += loader.load_builtin_rules()
    if directory:
        total += loader.load_directory(directory)

    logger.info(f"Indexed {total} chunks into {backend} store ({store.count()} documents total)")
    if backend == 'memory':
        logger.warning("The memory backend is process-local; indexed chunks are discarded on exit")


if __name__ == '__main__':
    main()
