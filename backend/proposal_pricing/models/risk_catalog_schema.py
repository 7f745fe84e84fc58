from pydantic import BaseModel, Field
from typing import List, Literal, Optional

ScoringType = Literal["LINEAR", "EXPONENTIAL", "THRESHOLD", "CATEGORICAL", "BOOLEAN", "FORMULA"]
DataType = Literal["NUMERIC", "PERCENTAGE", "CURRENCY", "CATEGORICAL", "BOOLEAN", "DATE"]


class RiskChoiceOption(BaseModel):
    label: str
    score: float = Field(..., ge=0, le=100)


class RiskFactorRecord(BaseModel):
    """
    Risk factor row as stored by the persistence layer.
    scoring_type/data_type keep the stored vocabulary; the engine converts each
    record into a typed factor kind before scoring.
    """
    name: str = Field(..., min_length=1, description="e.g., Weather Delays")
    description: Optional[str] = None
    weight: float = Field(..., description="Contribution within its category, 0-100")
    scoring_type: ScoringType
    data_type: DataType = "NUMERIC"
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    options: List[RiskChoiceOption] = Field(default_factory=list, description="Choices for CATEGORICAL factors")
    formula: Optional[str] = Field(None, description="Stored free-text formula. Never evaluated.")
    is_active: bool = True
    sort_order: int = 0


class RiskCategoryRecord(BaseModel):
    name: str = Field(..., min_length=1, description="e.g., Schedule Risks")
    description: Optional[str] = None
    weight: float = Field(..., description="Contribution to the total score, 0-100")
    is_active: bool = True
    sort_order: int = 0
    factors: List[RiskFactorRecord] = Field(default_factory=list)
