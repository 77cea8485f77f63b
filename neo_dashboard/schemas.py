from datetime import date, datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class DiameterRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    estimated_diameter_min: float
    estimated_diameter_max: float


class EstimatedDiameter(BaseModel):
    model_config = ConfigDict(frozen=True)

    kilometers: DiameterRange
    meters: Optional[DiameterRange] = None


class RelativeVelocity(BaseModel):
    model_config = ConfigDict(frozen=True)

    kilometers_per_second: float
    kilometers_per_hour: Optional[float] = None
    miles_per_hour: Optional[float] = None


class MissDistance(BaseModel):
    model_config = ConfigDict(frozen=True)

    astronomical: Optional[float] = None
    lunar: Optional[float] = None
    kilometers: Optional[float] = None
    miles: Optional[float] = None


class CloseApproach(BaseModel):
    model_config = ConfigDict(frozen=True)

    close_approach_date: date
    close_approach_date_full: Optional[str] = None
    epoch_date_close_approach: Optional[int] = None
    relative_velocity: RelativeVelocity
    miss_distance: MissDistance
    orbiting_body: Optional[str] = None


class OrbitClass(BaseModel):
    model_config = ConfigDict(frozen=True)

    orbit_class_type: Optional[str] = None
    orbit_class_description: Optional[str] = None


class OrbitalData(BaseModel):
    model_config = ConfigDict(frozen=True, extra="allow")

    orbit_id: Optional[str] = None
    orbit_determination_date: Optional[str] = None
    first_observation_date: Optional[str] = None
    last_observation_date: Optional[str] = None
    orbit_class: Optional[OrbitClass] = None


class Neo(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    neo_reference_id: Optional[str] = None
    name: str
    nasa_jpl_url: Optional[str] = None
    absolute_magnitude_h: Optional[float] = None
    is_potentially_hazardous_asteroid: bool
    is_sentry_object: bool = False
    estimated_diameter: EstimatedDiameter
    close_approach_data: List[CloseApproach] = Field(default_factory=list)
    orbital_data: Optional[OrbitalData] = None

    @property
    def first_approach(self) -> Optional[CloseApproach]:
        return self.close_approach_data[0] if self.close_approach_data else None

    @property
    def mean_diameter_km(self) -> float:
        km = self.estimated_diameter.kilometers
        return (km.estimated_diameter_min + km.estimated_diameter_max) / 2


class FeedLinks(BaseModel):
    next: Optional[str] = None
    previous: Optional[str] = None
    self_link: Optional[str] = Field(None, alias="self")


class FeedResponse(BaseModel):
    links: Optional[FeedLinks] = None
    element_count: int = 0
    near_earth_objects: Dict[str, List[Neo]] = Field(default_factory=dict)


class FilterOptions(BaseModel):
    show_hazardous_only: bool = False
    sort_by: Literal["date", "size", "distance"] = "date"
    sort_order: Literal["asc", "desc"] = "asc"
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def blank_is_unset(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class DateRange(BaseModel):
    past_limit: date
    today: date
    future_limit: date


class FeedState(BaseModel):
    near_earth_objects: Dict[date, List[Neo]]
    element_count: int
    loading: bool
    has_more: bool
    error: Optional[str] = None
    current_end_date: Optional[date] = None
    filters: FilterOptions
    available_date_range: DateRange


class User(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    name: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class FavoriteCreate(BaseModel):
    neo_id: str
    neo_name: str
    approach_date: date
    is_hazardous: bool
    estimated_diameter: float


class FavoriteRead(FavoriteCreate):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: str
    created_at: datetime
