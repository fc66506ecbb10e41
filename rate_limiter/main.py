import uvicorn

from rate_limiter.core.app_factory import create_app

app = create_app()


if __name__ == "__main__":
    uvicorn.run("rate_limiter.main:app", host="0.0.0.0", port=8000)
