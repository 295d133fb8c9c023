"""Run the gateway with uvicorn: `python -m training_gateway`."""

import uvicorn

from training_gateway.config import settings

if __name__ == "__main__":
    uvicorn.run("training_gateway.main:app", host="0.0.0.0", port=settings.port)
