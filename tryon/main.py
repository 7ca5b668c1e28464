import os

import uvicorn

from tryon.app import create_app

# Fails at import time on bad configuration, so the server never starts serving
app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
