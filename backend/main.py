from __future__ import annotations

import logging

from songquiz.application import create_app

logging.basicConfig(level=logging.INFO)

app = create_app()
