# barstock/constants.py
# Labels shown in reports and AI prompts

# Application sections a team member can be granted access to
ROUTE_KEYS = (
    "dashboard",
    "products",
    "stock",
    "movements",
    "reports",
    "teams",
    "ai",
    "settings",
)

# Always reachable regardless of a member's allow-list
ALWAYS_ALLOWED_ROUTES = frozenset({"settings"})

# Product categories for bar inventory
PRODUCT_CATEGORIES = {
    "bebidas-destiladas": "Bebidas Destiladas",
    "bebidas-fermentadas": "Bebidas Fermentadas",
    "vinhos": "Vinhos",
    "refrigerantes": "Refrigerantes",
    "sucos": "Sucos",
    "agua": "Água",
    "energeticos": "Energéticos",
    "mixers": "Mixers e Tônicas",
    "ingredientes": "Ingredientes",
    "frutas": "Frutas",
    "descartaveis": "Descartáveis",
    "outros": "Outros",
}

# Units of measurement
PRODUCT_UNITS = {
    "un": "Unidade",
    "garrafa": "Garrafa",
    "lata": "Lata",
    "litro": "Litro",
    "ml": "Mililitro",
    "kg": "Quilograma",
    "g": "Grama",
    "caixa": "Caixa",
    "pacote": "Pacote",
    "dose": "Dose",
}

MOVEMENT_TYPE_LABELS = {
    "entrada": "Entrada",
    "saida": "Saída",
    "perda": "Perda",
    "ajuste": "Ajuste",
}

# Movement reasons per type
MOVEMENT_REASONS = {
    "entrada": {
        "compra": "Compra",
        "doacao": "Doação",
        "transferencia": "Transferência",
        "ajuste": "Ajuste de Inventário",
    },
    "saida": {
        "venda": "Venda",
        "uso-interno": "Uso Interno",
        "preparo-drink": "Preparo de Drink",
        "transferencia": "Transferência",
    },
    "perda": {
        "vencimento": "Vencimento",
        "quebra": "Quebra",
        "roubo": "Roubo",
        "desperdicio": "Desperdício",
    },
    "ajuste": {
        "inventario": "Ajuste de Inventário",
        "correcao": "Correção de Erro",
    },
}

STOCK_COUNT_REASON = "inventario"


def category_label(category):
    return PRODUCT_CATEGORIES.get(category, category or "-")


def unit_label(unit):
    return PRODUCT_UNITS.get(unit, unit or "")


def reason_label(movement_type, reason):
    if not reason:
        return "-"
    return MOVEMENT_REASONS.get(movement_type, {}).get(reason, reason)
