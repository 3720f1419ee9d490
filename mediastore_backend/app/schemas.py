from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


# =========================
# Uploads
# =========================
class UploadResponse(BaseModel):
    message: str
    file_url: str = Field(serialization_alias="fileUrl")
    # the stored reference, e.g. "audio-files/<hex>.mp3"
    file_path: str = Field(serialization_alias="filePath")
    file_name: Optional[str] = Field(default=None, serialization_alias="fileName")
    file_size: int = Field(serialization_alias="fileSize")


# =========================
# Compression
# =========================
class CompressRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file_paths: Optional[List[str]] = Field(default=None, alias="filePaths")


class CompressSingleRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file_path: Optional[str] = Field(default=None, alias="filePath")


class CompressResponse(BaseModel):
    message: str
    zip_file_url: str = Field(serialization_alias="zipFileUrl")
    zip_file_path: str = Field(serialization_alias="zipFilePath")
    files_compressed: Optional[int] = Field(default=None, serialization_alias="filesCompressed")
    original_size: int = Field(serialization_alias="originalSize")
    compressed_size: int = Field(serialization_alias="compressedSize")
    compression_ratio: str = Field(serialization_alias="compressionRatio")
