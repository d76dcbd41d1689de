import logging

import uvicorn

from x402link.config import Settings
from x402link.shortener import create_app

# You can run this with: export ADDRESS=0x... && python server.py

logging.basicConfig(level=logging.INFO)

settings = Settings.from_env()

app = create_app(settings)


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=3000)
