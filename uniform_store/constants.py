ORDER_STATUSES = {
    "pending": "Pendente",
    "approved": "Aprovado",
    "in_production": "Em Produção",
    "shipped": "Enviado",
    "delivered": "Entregue",
    "cancelled": "Cancelado",
}
ORDER_STATUS_DEFAULT = "pending"

PRODUCT_STATUSES = {
    "active": "Ativo",
    "inactive": "Inativo",
}

# paid extras a product may offer; price column in products.customization is "<key>Price"
CUSTOMIZATIONS = {
    "embroidery": "Bordado",
    "printing": "Estampa",
    "sublimation": "Sublimação",
    "paint": "Pintura",
}

ORDER_ID_PREFIX = "ORC"

QUOTE_TABLE_COLUMNS = ("Produto", "Tamanho", "Cor", "Qtd", "Preço Unit.", "Total")

COMMERCIAL_TERMS = (
    "Prazo de entrega: 30 dias úteis",
    "Forma de pagamento: Negociável",
    "Validade do orçamento: 30 dias",
)
