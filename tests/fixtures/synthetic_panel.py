"""
Synthetic household and city tables for tests.

Provides deterministic generators with fixed seeds. Raw tables use the
locale-specific source column names from the variable dictionary so the
whole cleaning pipeline is exercised.
"""

from __future__ import annotations

from typing import Any

import numpy as np
import pandas as pd

HOUSEHOLD_SOURCE_NAMES = {
    "hhid": "家庭编号",
    "cid": "社区编号",
    "city": "城市代码",
    "year": "年份",
    "age": "年龄",
    "gender": "性别",
    "edu": "受教育年限",
    "health": "健康状况",
    "hukou": "户口类型",
    "income": "家庭纯收入",
    "asset": "家庭总资产",
    "house_value": "现住房市值",
    "house_area": "现住房建筑面积",
    "owner": "是否拥有住房",
    "birth_yc": "子女出生年份",
}

CITY_SOURCE_NAMES = {
    "city": "城市代码",
    "year": "年份",
    "water_total": "水资源总量",
    "hukou_pop": "户籍人口",
    "budget_exp": "一般公共预算支出",
    "res_land": "城市居住用地面积",
    "primary_schools": "小学学校数",
    "middle_schools": "普通中学学校数",
    "gdp": "地区生产总值",
    "loans": "年末金融机构贷款余额",
}


def make_household_records(
    n_cities: int = 8,
    communities_per_city: int = 3,
    households_per_community: int = 10,
    years: tuple[int, ...] = (2012, 2013, 2014, 2015, 2016),
    missing_cid_share: float = 0.05,
    seed: int = 42,
) -> pd.DataFrame:
    """Household-year records with normalized column names.

    Every household is observed in every year. Each household has one child
    birth year in 2008..2016, so some rows fall outside the birth cohort
    restriction and one row per household (at most) has fertility = 1.
    """
    rng = np.random.default_rng(seed)
    rows = []
    hhid = 1000
    for c in range(n_cities):
        city = 110000 + 100 * c
        for k in range(communities_per_city):
            cid = f"{city}-{k}"
            base_price = rng.uniform(0.5, 3.0)  # 10k yuan per m2
            for _ in range(households_per_community):
                hhid += 1
                age0 = int(rng.integers(24, 36))
                gender = rng.choice(["男", "女"])
                hukou = rng.choice(["农业户口", "非农业户口"])
                edu = float(rng.integers(6, 17))
                area = float(rng.uniform(50, 150))
                owner = int(rng.random() < 0.8)
                birth_yc = int(rng.integers(2008, 2017))
                for t, year in enumerate(years):
                    health = rng.choice(["健康", "不健康", "一般"], p=[0.75, 0.2, 0.05])
                    growth = 1 + 0.08 * t
                    rows.append(
                        {
                            "hhid": hhid,
                            "cid": cid,
                            "city": city,
                            "year": year,
                            "age": age0 + t,
                            "gender": gender,
                            "edu": edu,
                            "health": health,
                            "hukou": hukou,
                            "income": float(rng.lognormal(10.5, 0.6)),
                            "asset": float(rng.lognormal(12.0, 0.8)),
                            "house_value": base_price * growth * area * rng.uniform(0.8, 1.2),
                            "house_area": area,
                            "owner": owner,
                            "birth_yc": birth_yc,
                        }
                    )

    df = pd.DataFrame(rows)
    drop_cid = rng.random(len(df)) < missing_cid_share
    df.loc[drop_cid, "cid"] = None
    return df


def make_city_records(
    n_cities: int = 8,
    years: tuple[int, ...] = (2012, 2013, 2014, 2015, 2016),
    seed: int = 7,
) -> pd.DataFrame:
    """City-year administrative statistics with normalized column names."""
    rng = np.random.default_rng(seed)
    rows = []
    for c in range(n_cities):
        city = 110000 + 100 * c
        pop = rng.uniform(200, 1200)
        water = rng.uniform(2000, 20000)
        land = rng.uniform(20, 120)
        for t, year in enumerate(years):
            gdp = pop * rng.uniform(3, 12) * (1 + 0.07 * t)
            rows.append(
                {
                    "city": city,
                    "year": year,
                    "water_total": water * rng.uniform(0.8, 1.2),
                    "hukou_pop": pop * (1 + 0.01 * t),
                    "budget_exp": gdp * rng.uniform(0.1, 0.2),
                    "res_land": land * (1 + 0.03 * t),
                    "primary_schools": float(rng.integers(100, 600)),
                    "middle_schools": float(rng.integers(50, 300)),
                    "gdp": gdp,
                    "loans": gdp * rng.uniform(0.8, 1.6),
                }
            )
    return pd.DataFrame(rows)


def to_source_names(df: pd.DataFrame, table: str = "household") -> pd.DataFrame:
    """Rename normalized columns to the locale-specific source names."""
    mapping = HOUSEHOLD_SOURCE_NAMES if table == "household" else CITY_SOURCE_NAMES
    return df.rename(columns=mapping)


def make_iv_panel(
    n_cities: int = 30,
    households_per_city: int = 40,
    n_years: int = 6,
    beta: float = -0.5,
    seed: int = 42,
) -> tuple[pd.DataFrame, dict[str, Any]]:
    """Estimation table with a known price effect and an endogenous price.

    z (city-year)        instrument
    u (row)              unobserved confounder
    ln_cm_price = 0.8 z + 0.5 u + a_c + g_t + v
    fertility   = beta ln_cm_price + 0.3 x1 + b_c + h_t + u + e

    OLS is biased upward by u; 2SLS with z recovers beta.
    """
    rng = np.random.default_rng(seed)
    years = list(range(2012, 2012 + n_years))
    a_c = rng.normal(0, 1, n_cities)
    b_c = rng.normal(0, 1, n_cities)
    g_t = rng.normal(0, 0.5, n_years)
    h_t = rng.normal(0, 0.5, n_years)
    z_ct = rng.normal(0, 1, (n_cities, n_years))

    rows = []
    for c in range(n_cities):
        for i in range(households_per_city):
            hhid = f"{c:03d}{i:03d}"
            owner = int(rng.random() < 0.7)
            for t, year in enumerate(years):
                u = rng.normal()
                x1 = rng.normal()
                z = z_ct[c, t]
                price = 0.8 * z + 0.5 * u + a_c[c] + g_t[t] + rng.normal(0, 0.5)
                y = beta * price + 0.3 * x1 + b_c[c] + h_t[t] + u + rng.normal(0, 0.5)
                rows.append(
                    {
                        "hhid": hhid,
                        "city": f"C{c:02d}",
                        "year": year,
                        "owner": owner,
                        "x1": x1,
                        "z": z,
                        "ln_cm_price": price,
                        "fertility": y,
                    }
                )
    return pd.DataFrame(rows), {"beta": beta}
