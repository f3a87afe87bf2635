from pydantic import BaseModel, ConfigDict


class Voice(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str
    language: str
    country: str
    gender: str
    locale: str
    voice_name: str

    def to_public_dict(self) -> dict:
        return {
            "key": self.key,
            "language": self.language,
            "country": self.country,
            "gender": self.gender,
            "locale": self.locale,
            "voiceName": self.voice_name,
        }
