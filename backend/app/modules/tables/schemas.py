from pydantic import BaseModel, Field
from typing import Dict, Union

# Nilai sel yang boleh dikirim: skalar saja (object / array ditolak 422)
CellInput = Union[None, bool, int, float, str]


class RecordUpdate(BaseModel):
    # id record (nilai primary key) + field yang mau diubah
    id: Union[int, str]
    data: Dict[str, CellInput] = Field(default_factory=dict)
