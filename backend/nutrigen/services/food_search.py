import httpx
import logging
from typing import Dict, List, Optional, Protocol

from sqlalchemy import or_
from sqlalchemy.orm import Session

from nutrigen.core.config import settings
from nutrigen.models.database import ReferenceFoodRow, session_scope
from nutrigen.schemas.nutrition import NutrientValue, ReferenceFood
from nutrigen.services.nutrient_catalog import FIELDS_BY_KEY
from nutrigen.services.reference_context import name_similarity, name_tokens

logger = logging.getLogger(__name__)


class FoodSearch(Protocol):
    async def search(self, query: str, limit: int) -> List[ReferenceFood]:
        ...


# FDC nutrient id -> catalog key
# Several ids can map to the same key (energy has Atwater variants in Foundation data)
FDC_NUTRIENT_MAP: Dict[int, str] = {
    # Macronutrients
    1005: "carbohydrates",
    1003: "protein",
    1004: "fat",
    1079: "fiber",
    2000: "totalSugars",
    1063: "totalSugars",

    # Other
    1018: "alcoholEthyl",
    1057: "caffeine",
    1058: "theobromine",
    1253: "cholesterol",
    1008: "energyKcal",
    2047: "energyKcal",
    2048: "energyKcal",
    1051: "water",
    1007: "ash",
    1198: "betaine",

    # Vitamins
    1106: "vitaminA_RAE",
    1105: "retinol",
    1108: "caroteneAlpha",
    1107: "caroteneBeta",
    1120: "cryptoxanthinBeta",
    1123: "luteinZeaxanthin",
    1122: "lycopene",
    1165: "vitaminB1_Thiamin",
    1166: "vitaminB2_Riboflavin",
    1167: "vitaminB3_Niacin",
    1170: "vitaminB5_PantothenicAcid",
    1175: "vitaminB6",
    1190: "folateDFE",
    1187: "folateFood",
    1177: "folateTotal",
    1186: "folicAcid",
    1178: "vitaminB12",
    1162: "vitaminC",
    1114: "vitaminD",
    1109: "vitaminE",
    1185: "vitaminK",
    1180: "choline",

    # Minerals
    1087: "calcium",
    1089: "iron",
    1090: "magnesium",
    1091: "phosphorus",
    1092: "potassium",
    1093: "sodium",
    1103: "selenium",
    1095: "zinc",
    1098: "copper",
    1101: "manganese",
    1099: "fluoride",

    # Lipid totals and the most common fatty acids
    1258: "totalSaturated",
    1292: "totalMonounsaturated",
    1293: "totalPolyunsaturated",
    1257: "totalTrans",
    1329: "totalTransMonoenoic",
    1331: "totalTransPolyenoic",
    1259: "sfa4_0",
    1260: "sfa6_0",
    1261: "sfa8_0",
    1262: "sfa10_0",
    1263: "sfa12_0",
    1264: "sfa14_0",
    1265: "sfa16_0",
    1266: "sfa18_0",
    1267: "sfa20_0",
    1273: "sfa22_0",
    1268: "mufa18_1",
    1275: "mufa16_1",
    1277: "mufa20_1",
    1279: "mufa22_1",
    1269: "pufa18_2",
    1270: "pufa18_3",
    1276: "pufa18_4",
    1271: "pufa20_4",
    1278: "pufa20_5",
    1280: "pufa22_5",
    1272: "pufa22_6",

    # Amino acids
    1222: "alanine",
    1220: "arginine",
    1223: "asparticAcid",
    1216: "cystine",
    1224: "glutamicAcid",
    1225: "glycine",
    1221: "histidine",
    1212: "isoleucine",
    1213: "leucine",
    1214: "lysine",
    1215: "methionine",
    1217: "phenylalanine",
    1226: "proline",
    1211: "threonine",
    1210: "tryptophan",
    1218: "tyrosine",
    1219: "valine",
    1227: "serine",
    1228: "hydroxyproline",

    # Carbohydrate detail
    1009: "starch",
    1010: "sucrose",
    1011: "glucose",
    1012: "fructose",
    1013: "lactose",
    1014: "maltose",
    1075: "galactose",

    # Sterols
    1283: "phytosterols",
    1288: "betaSitosterol",
    1286: "campesterol",
    1285: "stigmasterol",
}

_FDC_UNITS = {"g": "g", "mg": "mg", "ug": "µg", "µg": "µg", "kcal": "kcal"}


def parse_fdc_nutrients(food_data: Dict) -> Dict[str, NutrientValue]:
    """Parse one FDC search hit into catalog-keyed nutrient values.

    First non-zero value wins for keys with several FDC ids.
    """
    nutrients: Dict[str, NutrientValue] = {}

    for nutrient in food_data.get("foodNutrients", []):
        nutrient_id = nutrient.get("nutrientId") or nutrient.get("nutrient", {}).get("id")
        key = FDC_NUTRIENT_MAP.get(nutrient_id)
        if key is None or key in nutrients:
            continue

        value = nutrient.get("value", nutrient.get("amount"))
        if not value:
            continue

        unit_name = (nutrient.get("unitName") or "").strip().lower()
        unit = _FDC_UNITS.get(unit_name, FIELDS_BY_KEY[key].unit)
        try:
            nutrients[key] = NutrientValue(value=value, unit=unit)
        except ValueError as e:
            logger.debug(f"Skipping FDC nutrient {nutrient_id}: {e}")

    return nutrients


def row_to_reference(row: ReferenceFoodRow) -> ReferenceFood:
    nutrients = {}
    for key, raw in (row.nutrients or {}).items():
        if not isinstance(raw, dict):
            continue
        try:
            nutrients[key] = NutrientValue(**raw)
        except ValueError as e:
            logger.debug(f"Skipping stored nutrient {key} of {row.name}: {e}")
    return ReferenceFood(name=row.name, nutrients=nutrients, min_age_months=row.min_age_months)


class LocalFoodSearch:
    """Candidate search over the reference_foods table"""

    def __init__(self, db: Optional[Session] = None):
        self.db = db

    async def search(self, query: str, limit: int) -> List[ReferenceFood]:
        tokens = sorted(name_tokens(query))
        if not tokens:
            return []

        with session_scope(self.db) as db:
            rows = (
                db.query(ReferenceFoodRow)
                .filter(or_(*[ReferenceFoodRow.name.ilike(f"%{token}%") for token in tokens]))
                .all()
            )

            # Closest names first
            rows.sort(key=lambda row: name_similarity(row.name, query), reverse=True)
            return [row_to_reference(row) for row in rows[:limit]]


class FDCFoodSearch:
    """
    FoodData Central search
    Falls back to local data if API is unavailable
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        fallback: Optional[FoodSearch] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.fdc_api_key
        self.base_url = "https://api.nal.usda.gov/fdc/v1"
        self.fallback = fallback
        self.client = client

    async def _fallback(self, query: str, limit: int) -> List[ReferenceFood]:
        if self.fallback is None:
            return []
        return await self.fallback.search(query, limit)

    async def search(self, query: str, limit: int) -> List[ReferenceFood]:
        # If no API key, use local search
        if not self.api_key:
            return await self._fallback(query, limit)

        try:
            if self.client is not None:
                response = await self._get(self.client, query, limit)
            else:
                async with httpx.AsyncClient() as client:
                    response = await self._get(client, query, limit)

            if response.status_code != 200:
                logger.warning(f"FDC API returned status {response.status_code}")
                return await self._fallback(query, limit)

            foods = response.json().get("foods", [])
        except httpx.HTTPError as e:
            logger.error(f"FDC API error: {e}")
            return await self._fallback(query, limit)

        results = []
        for food in foods[:limit]:
            name = (food.get("description") or "").strip()
            if not name:
                continue
            results.append(ReferenceFood(name=name, nutrients=parse_fdc_nutrients(food)))
        return results

    async def _get(self, client: httpx.AsyncClient, query: str, limit: int) -> httpx.Response:
        return await client.get(
            f"{self.base_url}/foods/search",
            params={
                "query": query,
                "api_key": self.api_key,
                "pageSize": limit,
                "dataType": "Foundation,SR Legacy",
            },
            timeout=10.0,
        )
