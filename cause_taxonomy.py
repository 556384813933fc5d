# cause_taxonomy.py
# Health condition labels shown in the UI and the elementary IHME causes
# behind them.

ALL_CONDITIONS = "All health conditions"

# Causes that enter the SHS composite
ALL_SHS_CAUSES = (
    "Acute glomerulonephritis",
    "Alzheimer's disease and other dementias",
    "Chronic kidney disease",
    "Cirrhosis and other chronic liver diseases",
    "Congenital birth defects",
    "Diabetes mellitus",
    "Extensively drug-resistant tuberculosis",
    "HIV/AIDS",
    "Injuries",
    "Intracerebral hemorrhage",
    "Ischemic stroke",
    "Leukemia",
    "Multidrug-resistant tuberculosis without extensive drug resistance",
    "Multiple sclerosis",
    "Musculoskeletal disorders",
    "Neonatal encephalopathy due to birth asphyxia and trauma",
    "Neonatal preterm birth",
    "Neoplasms",
    "Other digestive diseases",
    "Other neglected tropical diseases",
    "Other neoplasms",
    "Parkinson's disease",
    "Schistosomiasis",
    "Sickle cell disorders",
    "Subarachnoid hemorrhage",
    "Tetanus",
    "Thalassemias",
)

CAUSE_GROUPS = {
    "Stroke": (
        "Intracerebral hemorrhage",
        "Ischemic stroke",
        "Subarachnoid hemorrhage",
    ),
    "Liver diseases": (
        "Cirrhosis and other chronic liver diseases",
        "Other digestive diseases",
        "Schistosomiasis",
    ),
    "Tuberculosis": (
        "Multidrug-resistant tuberculosis without extensive drug resistance",
        "Extensively drug-resistant tuberculosis",
    ),
    "Kidney diseases": (
        "Acute glomerulonephritis",
        "Chronic kidney disease",
    ),
}

# Elementary cause picked when a group label leaves SHS mode
GROUP_REPRESENTATIVE = {
    "Stroke": "Ischemic stroke",
    "Liver diseases": "Cirrhosis and other chronic liver diseases",
    "Tuberculosis": "Multidrug-resistant tuberculosis without extensive drug resistance",
    "Kidney diseases": "Chronic kidney disease",
}

# Dropdown in the standard (single measure) mode
HEALTH_CONDITIONS = [
    ALL_CONDITIONS,
    "Acute glomerulonephritis",
    "Alzheimer's disease and other dementias",
    "Chronic kidney disease",
    "Cirrhosis and other chronic liver diseases",
    "Congenital birth defects",
    "Diabetes mellitus",
    "Drug-susceptible tuberculosis",
    "Extensively drug-resistant tuberculosis",
    "HIV/AIDS",
    "Injuries",
    "Intracerebral hemorrhage",
    "Ischemic stroke",
    "Leukemia",
    "Multidrug-resistant tuberculosis without extensive drug resistance",
    "Multiple sclerosis",
    "Musculoskeletal disorders",
    "Neonatal encephalopathy due to birth asphyxia and trauma",
    "Neonatal preterm birth",
    "Neoplasms",
    "Other digestive diseases",
    "Other neglected tropical diseases",
    "Other neoplasms",
    "Parkinson's disease",
    "Schistosomiasis",
    "Sickle cell disorders",
    "Subarachnoid hemorrhage",
    "Tetanus",
    "Thalassemias",
]

# Dropdown while SHS is being calculated: grouped labels replace their members
HEALTH_CONDITIONS_SHS = [
    ALL_CONDITIONS,
    "Alzheimer's disease and other dementias",
    "Congenital birth defects",
    "Diabetes mellitus",
    "HIV/AIDS",
    "Kidney diseases",
    "Injuries",
    "Leukemia",
    "Liver diseases",
    "Multiple sclerosis",
    "Musculoskeletal disorders",
    "Neonatal encephalopathy due to birth asphyxia and trauma",
    "Neonatal preterm birth",
    "Neoplasms",
    "Other neglected tropical diseases",
    "Other neoplasms",
    "Parkinson's disease",
    "Sickle cell disorders",
    "Stroke",
    "Tetanus",
    "Thalassemias",
    "Tuberculosis",
]

# Age bands in dropdown order, with their IHME age_id
AGE_IDS = {
    "Age-standardized": 27,
    "<1 year": 28,
    "1-4 years": 5,
    "5-9 years": 6,
    "10-14 years": 7,
    "15-19 years": 8,
    "20-24 years": 9,
    "25-29 years": 10,
    "30-34 years": 11,
    "35-39 years": 12,
    "40-44 years": 13,
    "45-49 years": 14,
    "50-54 years": 15,
    "55-59 years": 16,
    "60-64 years": 17,
    "65-69 years": 18,
    "70-74 years": 19,
    "75-79 years": 20,
    "80-84": 30,
    "85-89": 31,
    "90-94": 32,
    "95+ years": 235,
    "All ages": 22,
}
AGE_GROUPS = list(AGE_IDS)

AGE_STANDARDIZED = "Age-standardized"
ALL_AGES = "All ages"

# The Thalassemia weights are only defined for children and adolescents
THALASSEMIA_AGE_GROUPS = ["<1 year", "1-4 years", "5-9 years", "10-14 years", "15-19 years"]

_GROUP_OF = {cause: label for label, causes in CAUSE_GROUPS.items() for cause in causes}
# Drug-susceptible TB is not SHS-eligible but still belongs under the TB label
_GROUP_OF["Drug-susceptible tuberculosis"] = "Tuberculosis"


def expand_cause_selection(label, shs_mode=False):
    """
    Elementary causes behind a health condition label.

    "All health conditions" always means the SHS-eligible causes; the four
    grouped labels expand to their members; anything else is passed through
    as a literal cause name.
    """
    if label == ALL_CONDITIONS:
        return ALL_SHS_CAUSES
    if label in CAUSE_GROUPS:
        return CAUSE_GROUPS[label]
    return (label,)


def condition_choices(shs_mode):
    return HEALTH_CONDITIONS_SHS if shs_mode else HEALTH_CONDITIONS


def condition_for_mode(label, shs_mode):
    """Carry the selected condition across a switch of the SHS toggle."""
    choices = condition_choices(shs_mode)
    if label in choices:
        return label
    if shs_mode:
        group = _GROUP_OF.get(label)
        return group if group in choices else ALL_CONDITIONS
    rep = GROUP_REPRESENTATIVE.get(label)
    return rep if rep in choices else ALL_CONDITIONS


def age_choices(label, shs_mode):
    if shs_mode and label == "Thalassemias":
        return THALASSEMIA_AGE_GROUPS
    return AGE_GROUPS


def age_for_condition(age_group, label, shs_mode):
    choices = age_choices(label, shs_mode)
    return age_group if age_group in choices else choices[0]
