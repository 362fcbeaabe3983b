# =========================
# NICKNAME POOLS
# =========================
DUTCH_SNACKS = (
    "bitterbal",
    "kroket",
    "frikandel",
    "frikandel speciaal",
    "kaassoufflé",
    "stroopwafel",
    "poffertje",
    "oliebol",
    "kibbeling",
    "kapsalon",
    "patatje oorlog",
    "patat speciaal",
    "bamischijf",
    "nasibal",
    "berenklauw",
    "gehaktbal",
    "loempia",
    "eierbal",
    "viandel",
    "mexicano",
    "kipcorn",
    "saucijzenbroodje",
    "tompouce",
    "speculaas",
    "pepernoot",
    "kruidnoot",
    "drop",
    "hagelslag",
    "ontbijtkoek",
    "appelflap",
    "bossche bol",
    "krakeling",
    "zeeuwse bolus",
    "suikerbrood",
    "rookworst",
    "haring",
    "stamppot",
    "erwtensoep",
    "kroepoek",
    "vlaai",
    "boterkoek",
    "mergpijp",
    "jodenkoek",
    "kaasstengel",
    "borrelnootje",
    "oude kaas",
    "leverworst",
    "gevulde koek",
    "spekkie",
    "muisjes",
)

BATTLE_CHOICE_A = "Pewdiepie"
BATTLE_CHOICE_B = "T-Series"
