from pydantic import BaseModel, ConfigDict, Field


class PartyRecord(BaseModel):
    """
    One client/opportunity entry from the BuilderPrime clients API.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int = Field(..., description="Client id; joins to MeetingRecord.client_id.")
    first_name: str | None = Field(None, alias="firstName")
    last_name: str | None = Field(None, alias="lastName")
    lead_setter_first_name: str | None = Field(
        None,
        alias="leadSetterFirstName",
        description="First name of the staff member who originated the lead.",
    )
    lead_setter_last_name: str | None = Field(
        None,
        alias="leadSetterLastName",
        description="Last name of the staff member who originated the lead.",
    )

    @property
    def lead_setter_name(self) -> str | None:
        parts = [
            p.strip()
            for p in (self.lead_setter_first_name, self.lead_setter_last_name)
            if p and p.strip()
        ]
        return " ".join(parts) or None
