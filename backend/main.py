"""
FastAPI backend for the VCD protocol analyzer.
Parses dumps once, keeps them in memory and serves value queries and
protocol decodes against them.
"""

import logging
import os
import uuid
from collections import OrderedDict
from contextlib import asynccontextmanager
from typing import Literal

from dotenv import load_dotenv

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

# Load environment variables from .env file
load_dotenv()

from decoders import ProtocolConfig
from tools import execute_tool
from vcd_parser import get_waveform_summary, parse_vcd


MAX_DUMPS = int(os.environ.get("VCD_MAX_DUMPS", "16"))
MAX_DECODES = int(os.environ.get("VCD_MAX_DECODES", "32"))
DEFAULT_BAUD = int(os.environ.get("VCD_DEFAULT_BAUD", "9600"))
LOG_LEVEL = os.environ.get("VCD_LOG_LEVEL", "INFO").upper()
CORS_ORIGINS = [o.strip() for o in os.environ.get("VCD_CORS_ORIGINS", "*").split(",") if o.strip()]

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# dump_id -> {"waveform": Waveform, "decoded": OrderedDict(cache_key -> result)}
dumps: "OrderedDict[str, dict]" = OrderedDict()


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    dumps.clear()


app = FastAPI(title="VCD Protocol Analyzer", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


TimeUnit = Literal["s", "ms", "us", "ns", "ps", "fs"]


class ParseRequest(BaseModel):
    content: str
    reconstruct_vectors: bool = True


class DecodeRequest(BaseModel):
    type: Literal["UART", "SPI", "Avalon"]
    signals: list[str]
    baud_rate: int | None = None
    cpol: Literal[0, 1] = 0
    cpha: Literal[0, 1] = 0


def get_dump(dump_id: str) -> dict:
    if dump_id not in dumps:
        raise HTTPException(status_code=404, detail="Dump not found")
    return dumps[dump_id]


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.post("/vcd")
async def upload_vcd(request: ParseRequest):
    """Parse VCD text and keep the result for later queries."""
    waveform = parse_vcd(request.content, reconstruct=request.reconstruct_vectors)

    dump_id = str(uuid.uuid4())[:8]
    dumps[dump_id] = {"waveform": waveform, "decoded": OrderedDict()}
    while len(dumps) > MAX_DUMPS:
        evicted, _ = dumps.popitem(last=False)
        logger.info("Evicted dump %s", evicted)

    return {"dump_id": dump_id, **get_waveform_summary(waveform)}


@app.get("/vcd/{dump_id}")
async def dump_summary(dump_id: str):
    return get_waveform_summary(get_dump(dump_id)["waveform"])


@app.delete("/vcd/{dump_id}")
async def delete_dump(dump_id: str):
    get_dump(dump_id)
    del dumps[dump_id]
    return {"deleted": dump_id}


@app.get("/vcd/{dump_id}/value")
async def value_at_time(dump_id: str, signal: str, time: int, unit: TimeUnit | None = None):
    result = execute_tool("value_at", {
        "waveform": get_dump(dump_id)["waveform"],
        "signal": signal,
        "time": time,
        "unit": unit
    })
    if "error" in result:
        raise HTTPException(status_code=404, detail=result["error"])
    return result


@app.get("/vcd/{dump_id}/transitions")
async def transitions(dump_id: str, signal: str, start: int = 0, end: int | None = None):
    result = execute_tool("transitions", {
        "waveform": get_dump(dump_id)["waveform"],
        "signal": signal,
        "start": start,
        "end": end
    })
    if "error" in result:
        raise HTTPException(status_code=404, detail=result["error"])
    return result


@app.post("/vcd/{dump_id}/decode")
async def decode(dump_id: str, request: DecodeRequest):
    """Decode a protocol; results are cached per dump and configuration."""
    dump = get_dump(dump_id)
    config = ProtocolConfig(
        type=request.type,
        signals=request.signals,
        baud_rate=DEFAULT_BAUD if request.baud_rate is None else request.baud_rate,
        cpol=request.cpol,
        cpha=request.cpha
    )

    decoded = dump["decoded"]
    key = config.cache_key()
    if key in decoded:
        decoded.move_to_end(key)
        return decoded[key]

    decoded[key] = execute_tool("decode", {
        "waveform": dump["waveform"],
        "config": config
    })
    while len(decoded) > MAX_DECODES:
        decoded.popitem(last=False)
    return decoded[key]


# ============== Debug Endpoints ==============

@app.post("/debug/analyze")
async def analyze_vcd_endpoint(vcd_path: str):
    """Analyze a VCD file and return signal summary."""
    result = execute_tool("analyze_vcd", {"vcd_path": vcd_path})
    if "error" in result:
        raise HTTPException(status_code=400, detail=result["error"])
    return result


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8080)
