from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

def add_cors(app: FastAPI, origins: list[str]) -> None:
    origins = [o.strip() for o in origins if o.strip()] or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        # credentials only for an explicit allow-list, never with the wildcard
        allow_credentials="*" not in origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
