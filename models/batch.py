from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

# The swap partner of photo N is always photo N + 10
SWAP_OFFSET = 10


class BatchSettings(BaseModel):
    """Batch copy options; JSON field names follow the web client's BatchCopySettings."""
    model_config = ConfigDict(populate_by_name=True)

    num_copies: int = Field(1, ge=1, alias="numberOfCopies")
    base_text: str = Field("", alias="baseText")
    add_swap: bool = Field(False, alias="addSwapEncoding")
    add_visible_watermark: bool = Field(False, alias="addVisibleWatermark")
    create_zip: bool = Field(False, alias="createZip")
    watermark_text: Optional[str] = Field(None, alias="watermarkText")
    photo_number: Optional[int] = Field(None, alias="photoNumber")
    use_order_number_as_photo_number: bool = Field(False, alias="useOrderNumberAsPhotoNumber")

    def target_photo_for(self, order_number: int) -> int:
        if self.use_order_number_as_photo_number or self.photo_number is None:
            return order_number
        return self.photo_number

    def visible_text_for(self, order_number: str) -> str:
        return self.watermark_text or order_number


class CopyUnit(BaseModel):
    order_number: str
    destination_folder: str
    archive_path: Optional[str] = None


class SwapPair(BaseModel):
    file_a: str
    file_b: str
    number_a: int
    number_b: int


class BatchResult(BaseModel):
    copies_root: str
    units: List[CopyUnit] = Field(default_factory=list)
