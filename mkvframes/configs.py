from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    read_chunk_size: int = Field(65536, gt=0)  # Chunk size used by the byte source adapters.
    default_audio_byte_order: Literal["big", "little"] = (
        "big"  # Byte order for 32-bit PCM when the CodecID doesn't declare one (ffmpeg pcm_s32be).
    )
    max_element_size: int = Field(
        256 * 1024 * 1024, gt=0
    )  # Largest single EBML element the demuxer will buffer before giving up.

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
