"""
Static reference data: the 14 planning regions of Ceará (IPECE) and the
184 municipalities that compose them.

Every municipality belongs to exactly one region. Names are matched
exactly, so forms and imports must use the spelling listed here.
"""

from __future__ import annotations

from enum import Enum


class RegiaoPlanejamento(str, Enum):
    CARIRI = "Cariri"
    CENTRO_SUL = "Centro Sul"
    GRANDE_FORTALEZA = "Grande Fortaleza"
    LITORAL_LESTE = "Litoral Leste"
    LITORAL_NORTE = "Litoral Norte"
    LITORAL_OESTE_VALE_DO_CURU = "Litoral Oeste/Vale do Curu"
    MACICO_DE_BATURITE = "Maciço de Baturité"
    SERRA_DA_IBIAPABA = "Serra da Ibiapaba"
    SERTAO_CENTRAL = "Sertão Central"
    SERTAO_DE_CANINDE = "Sertão de Canindé"
    SERTAO_DOS_CRATEUS = "Sertão dos Crateús"
    SERTAO_DOS_INHAMUNS = "Sertão dos Inhamuns"
    SERTAO_DE_SOBRAL = "Sertão de Sobral"
    VALE_DO_JAGUARIBE = "Vale do Jaguaribe"


MUNICIPIOS_POR_REGIAO: dict[RegiaoPlanejamento, tuple[str, ...]] = {
    RegiaoPlanejamento.CARIRI: (
        "Abaiara",
        "Altaneira",
        "Antonina do Norte",
        "Araripe",
        "Assaré",
        "Aurora",
        "Barbalha",
        "Barro",
        "Brejo Santo",
        "Campos Sales",
        "Caririaçu",
        "Crato",
        "Farias Brito",
        "Granjeiro",
        "Jardim",
        "Jati",
        "Juazeiro do Norte",
        "Lavras da Mangabeira",
        "Mauriti",
        "Milagres",
        "Missão Velha",
        "Nova Olinda",
        "Penaforte",
        "Porteiras",
        "Potengi",
        "Salitre",
        "Santana do Cariri",
        "Tarrafas",
        "Várzea Alegre",
    ),
    RegiaoPlanejamento.CENTRO_SUL: (
        "Acopiara",
        "Baixio",
        "Cariús",
        "Catarina",
        "Cedro",
        "Icó",
        "Iguatu",
        "Ipaumirim",
        "Jucás",
        "Orós",
        "Quixelô",
        "Saboeiro",
        "Umari",
    ),
    RegiaoPlanejamento.GRANDE_FORTALEZA: (
        "Aquiraz",
        "Cascavel",
        "Caucaia",
        "Chorozinho",
        "Eusébio",
        "Fortaleza",
        "Guaiúba",
        "Horizonte",
        "Itaitinga",
        "Maracanaú",
        "Maranguape",
        "Pacajus",
        "Pacatuba",
        "Paracuru",
        "Paraipaba",
        "Pindoretama",
        "São Gonçalo do Amarante",
        "São Luís do Curu",
        "Trairi",
    ),
    RegiaoPlanejamento.LITORAL_LESTE: (
        "Aracati",
        "Beberibe",
        "Fortim",
        "Icapuí",
        "Itaiçaba",
        "Jaguaruana",
    ),
    RegiaoPlanejamento.LITORAL_NORTE: (
        "Acaraú",
        "Barroquinha",
        "Bela Cruz",
        "Camocim",
        "Chaval",
        "Cruz",
        "Granja",
        "Itarema",
        "Jijoca de Jericoacoara",
        "Marco",
        "Martinópole",
        "Morrinhos",
        "Uruoca",
    ),
    RegiaoPlanejamento.LITORAL_OESTE_VALE_DO_CURU: (
        "Amontada",
        "Apuiarés",
        "General Sampaio",
        "Irauçuba",
        "Itapajé",
        "Itapipoca",
        "Miraíma",
        "Pentecoste",
        "Tejuçuoca",
        "Tururu",
        "Umirim",
        "Uruburetama",
    ),
    RegiaoPlanejamento.MACICO_DE_BATURITE: (
        "Acarape",
        "Aracoiaba",
        "Aratuba",
        "Barreira",
        "Baturité",
        "Capistrano",
        "Guaramiranga",
        "Itapiúna",
        "Mulungu",
        "Ocara",
        "Pacoti",
        "Palmácia",
        "Redenção",
    ),
    RegiaoPlanejamento.SERRA_DA_IBIAPABA: (
        "Carnaubal",
        "Croatá",
        "Guaraciaba do Norte",
        "Ibiapina",
        "Ipu",
        "São Benedito",
        "Tianguá",
        "Ubajara",
        "Viçosa do Ceará",
    ),
    RegiaoPlanejamento.SERTAO_CENTRAL: (
        "Banabuiú",
        "Choró",
        "Deputado Irapuan Pinheiro",
        "Ibaretama",
        "Ibicuitinga",
        "Milhã",
        "Mombaça",
        "Pedra Branca",
        "Piquet Carneiro",
        "Quixadá",
        "Quixeramobim",
        "Senador Pompeu",
        "Solonópole",
    ),
    RegiaoPlanejamento.SERTAO_DE_CANINDE: (
        "Boa Viagem",
        "Canindé",
        "Caridade",
        "Itatira",
        "Madalena",
        "Paramoti",
    ),
    RegiaoPlanejamento.SERTAO_DOS_CRATEUS: (
        "Ararendá",
        "Catunda",
        "Crateús",
        "Hidrolândia",
        "Independência",
        "Ipaporanga",
        "Ipueiras",
        "Monsenhor Tabosa",
        "Nova Russas",
        "Novo Oriente",
        "Poranga",
        "Santa Quitéria",
        "Tamboril",
    ),
    RegiaoPlanejamento.SERTAO_DOS_INHAMUNS: (
        "Aiuaba",
        "Arneiroz",
        "Parambu",
        "Quiterianópolis",
        "Tauá",
    ),
    RegiaoPlanejamento.SERTAO_DE_SOBRAL: (
        "Alcântaras",
        "Cariré",
        "Coreaú",
        "Forquilha",
        "Frecheirinha",
        "Graça",
        "Groaíras",
        "Massapê",
        "Meruoca",
        "Moraújo",
        "Mucambo",
        "Pacujá",
        "Pires Ferreira",
        "Reriutaba",
        "Santana do Acaraú",
        "Senador Sá",
        "Sobral",
        "Varjota",
    ),
    RegiaoPlanejamento.VALE_DO_JAGUARIBE: (
        "Alto Santo",
        "Ererê",
        "Iracema",
        "Jaguaretama",
        "Jaguaribara",
        "Jaguaribe",
        "Limoeiro do Norte",
        "Morada Nova",
        "Palhano",
        "Pereiro",
        "Potiretama",
        "Quixeré",
        "Russas",
        "São João do Jaguaribe",
        "Tabuleiro do Norte",
    ),
}

TOTAL_MUNICIPIOS = 184

_REGIAO_POR_MUNICIPIO: dict[str, RegiaoPlanejamento] = {
    municipio: regiao
    for regiao, municipios in MUNICIPIOS_POR_REGIAO.items()
    for municipio in municipios
}

MUNICIPIOS_CEARA: list[str] = sorted(_REGIAO_POR_MUNICIPIO)

CEARA_GEOJSON_URL = "https://raw.githubusercontent.com/tbrugz/geodata-br/master/geojson/geojs-23-mun.json"

# GeoJSON (IBGE) spelling -> local spelling
GEOJSON_NAME_MAP: dict[str, str] = {
    "Deputado Irapuã Pinheiro": "Deputado Irapuan Pinheiro",
    "Itapagé": "Itapajé",
}


def regioes_list() -> list[RegiaoPlanejamento]:
    return list(RegiaoPlanejamento)


def get_regiao(municipio: str | None) -> RegiaoPlanejamento | None:
    if not municipio:
        return None
    return _REGIAO_POR_MUNICIPIO.get(municipio)


def get_municipios_por_regiao(regiao: RegiaoPlanejamento | str) -> tuple[str, ...]:
    try:
        key = RegiaoPlanejamento(regiao)
    except ValueError:
        return ()
    return MUNICIPIOS_POR_REGIAO[key]


def is_municipio(name: str | None) -> bool:
    return get_regiao(name) is not None


def parse_regiao(value: str | None) -> RegiaoPlanejamento | None:
    raw = (value or "").strip()
    if not raw:
        return None
    try:
        return RegiaoPlanejamento(raw)
    except ValueError:
        pass
    try:
        return RegiaoPlanejamento[raw.upper()]
    except KeyError:
        return None


def normalize_municipio_name(name: str) -> str:
    """Map a GeoJSON feature name onto the spelling used by the records."""
    return GEOJSON_NAME_MAP.get(name, name)
