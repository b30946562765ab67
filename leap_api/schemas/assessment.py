import uuid
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from leap_api.assessment.scoring import CategoryScores, LeapScores


class ContactData(BaseModel):
    full_name: str = Field(..., description="Respondent's name.")
    email: str = Field(..., description="Respondent's email address.", examples=["user@example.com"])
    company: Optional[str] = None
    role: Optional[str] = None
    phone: Optional[str] = None
    source: str = Field("assessment", max_length=50, description="Where the lead was captured.")

    def profile_fields(self) -> Dict[str, Any]:
        return {
            "full_name": self.full_name.strip(),
            "company": self.company,
            "role": self.role,
            "phone": self.phone,
        }


class LeapScoresIn(BaseModel):
    leadership: int
    effectiveness: int
    accountability: int
    productivity: int


class AnswerTraceItem(BaseModel):
    """One answered question, denormalised for report rendering."""
    question_id: str
    category: Optional[str] = None
    score: int
    question_text: Optional[str] = None
    response_label: Optional[str] = None


class AssessmentSubmission(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    contact_data: ContactData = Field(..., alias="contactData")
    user_id: Optional[uuid.UUID] = Field(None, alias="userId")
    assessment_type: Literal["individual", "team"] = Field(..., alias="assessmentType")
    scores: LeapScoresIn
    habit_score: int = Field(..., alias="habitScore")
    ability_score: int = Field(..., alias="abilityScore")
    talent_score: int = Field(..., alias="talentScore")
    skill_score: int = Field(..., alias="skillScore")
    answers: List[AnswerTraceItem] = Field(default_factory=list)
    captcha_token: Optional[str] = Field(None, alias="captchaToken")
    idempotency_key: Optional[str] = Field(None, alias="idempotencyKey", max_length=128)

    def category_scores(self) -> CategoryScores:
        return CategoryScores(
            habit=self.habit_score,
            ability=self.ability_score,
            talent=self.talent_score,
            skill=self.skill_score,
        )

    def leap_scores(self) -> LeapScores:
        return LeapScores(**self.scores.model_dump())

    def answer_trace(self) -> List[Dict[str, Any]]:
        return [answer.model_dump(exclude_none=True) for answer in self.answers]

    def has_captcha_token(self) -> bool:
        return bool(self.captcha_token and self.captcha_token.strip())


class AssessmentResponseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    user_id: Optional[uuid.UUID] = None
    assessment_type: str
    scores: Dict[str, int]
    habit_score: int
    ability_score: int
    talent_score: int
    skill_score: int
    answers: List[Dict[str, Any]]
    source: Optional[str] = None
    created_at: datetime


class ResultRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    response_id: str = Field("", alias="responseId")


class UserExistsRequest(BaseModel):
    email: str = ""


class UserExistsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    exists: bool
    user_id: Optional[uuid.UUID] = Field(None, alias="userId")


class ProfileOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str
    full_name: Optional[str] = None
    company: Optional[str] = None
    role: Optional[str] = None
    phone: Optional[str] = None


class LeadOut(BaseModel):
    """One assessment response with its respondent's contact details."""
    response_id: uuid.UUID
    created_at: datetime
    assessment_type: str
    scores: Dict[str, int]
    source: Optional[str] = None
    user_id: Optional[uuid.UUID] = None
    email: Optional[str] = None
    full_name: Optional[str] = None
    company: Optional[str] = None
    role: Optional[str] = None
    phone: Optional[str] = None

    @classmethod
    def from_response(cls, response) -> "LeadOut":
        user = response.user
        return cls(
            response_id=response.id,
            created_at=response.created_at,
            assessment_type=response.assessment_type,
            scores=response.scores,
            source=response.source,
            user_id=response.user_id,
            email=user.email if user else None,
            full_name=user.full_name if user else None,
            company=user.company if user else None,
            role=user.role if user else None,
            phone=user.phone if user else None,
        )
