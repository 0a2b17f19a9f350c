"""
E-mail templates

Templates use {{placeholder}} markers. Values are HTML-escaped in the body
and inserted raw in the subject. Unknown placeholders are left untouched so
a missing variable is visible in the delivered message instead of silently
vanishing.
"""

import html
import re
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from pydantic import BaseModel, Field

_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")


class TemplateId(str, Enum):
    SUPPLIER_APPROVED = "SUPPLIER_APPROVED"
    SUPPLIER_REJECTED = "SUPPLIER_REJECTED"
    NEW_OPPORTUNITY = "NEW_OPPORTUNITY"
    NEW_QUESTION = "NEW_QUESTION"
    QUESTION_ANSWERED = "QUESTION_ANSWERED"
    PROPOSAL_WINNER = "PROPOSAL_WINNER"
    PROPOSAL_LOSER = "PROPOSAL_LOSER"
    WINNER_DEFINED_SECRETARIA = "WINNER_DEFINED_SECRETARIA"


class EmailTemplate(BaseModel):
    template_id: TemplateId
    label: str
    subject: str
    body: str
    variables: list[str] = Field(default_factory=list)


class RenderedMessage(BaseModel):
    template_id: TemplateId
    subject: str
    html: str


_SIGNATURE = "<p>Atenciosamente,<br><b>{{senderName}}</b></p>"

DEFAULT_TEMPLATES: dict[TemplateId, EmailTemplate] = {
    TemplateId.SUPPLIER_APPROVED: EmailTemplate(
        template_id=TemplateId.SUPPLIER_APPROVED,
        label="Fornecedor Aprovado",
        subject="Cadastro Aprovado - Sistema Alicerce",
        body=(
            "<p>Olá,</p>"
            "<p>O cadastro da empresa <b>{{supplierName}}</b> foi <b>aprovado</b>. "
            "A partir de agora ela recebe as cotações dos grupos em que atua.</p>"
            '<p>Acesse: <a href="{{portalUrl}}">{{portalUrl}}</a></p>' + _SIGNATURE
        ),
        variables=["supplierName", "portalUrl", "senderName"],
    ),
    TemplateId.SUPPLIER_REJECTED: EmailTemplate(
        template_id=TemplateId.SUPPLIER_REJECTED,
        label="Fornecedor Rejeitado",
        subject="Cadastro Reprovado - Sistema Alicerce",
        body=(
            "<p>Olá, <b>{{supplierName}}</b>,</p>"
            "<p>O cadastro da sua empresa <b>não foi aprovado</b> no momento.</p>"
            "<p><b>Motivo:</b><br>{{reason}}</p>"
            "<p>Regularize as pendências e envie novamente pelo sistema.</p>" + _SIGNATURE
        ),
        variables=["supplierName", "reason", "senderName"],
    ),
    TemplateId.NEW_OPPORTUNITY: EmailTemplate(
        template_id=TemplateId.NEW_OPPORTUNITY,
        label="Nova Oportunidade",
        subject="Nova Cotação Aberta: {{demandTitle}}",
        body=(
            "<p>Olá, <b>{{supplierName}}</b>,</p>"
            "<p>Uma nova demanda compatível com a sua área de atuação foi aberta.</p>"
            "<ul>"
            "<li><b>Protocolo:</b> {{protocol}}</li>"
            "<li><b>Objeto:</b> {{demandTitle}}</li>"
            "<li><b>Prazo para envio da cotação:</b> {{deadline}}</li>"
            "</ul>"
            '<p><a href="{{portalUrl}}">Acessar o sistema e cotar</a></p>' + _SIGNATURE
        ),
        variables=["supplierName", "demandTitle", "protocol", "deadline", "portalUrl", "senderName"],
    ),
    TemplateId.NEW_QUESTION: EmailTemplate(
        template_id=TemplateId.NEW_QUESTION,
        label="Nova Dúvida Registrada",
        subject="Nova Dúvida na Demanda {{demandTitle}}",
        body=(
            "<p>Olá,</p>"
            "<p>Uma nova dúvida foi registrada na demanda <b>{{demandTitle}}</b> "
            "({{protocol}}) pelo fornecedor <b>{{supplierName}}</b>:</p>"
            "<p>“{{questionText}}”</p>" + _SIGNATURE
        ),
        variables=["demandTitle", "protocol", "supplierName", "questionText", "senderName"],
    ),
    TemplateId.QUESTION_ANSWERED: EmailTemplate(
        template_id=TemplateId.QUESTION_ANSWERED,
        label="Resposta da Dúvida",
        subject="Dúvida Respondida: {{demandTitle}}",
        body=(
            "<p>Olá, <b>{{supplierName}}</b>,</p>"
            "<p>A sua dúvida sobre a demanda <b>{{demandTitle}}</b> ({{protocol}}) foi respondida:</p>"
            "<p>“{{answerText}}”</p>"
            '<p><a href="{{portalUrl}}">Acessar o sistema</a></p>' + _SIGNATURE
        ),
        variables=["supplierName", "demandTitle", "protocol", "answerText", "portalUrl", "senderName"],
    ),
    TemplateId.PROPOSAL_WINNER: EmailTemplate(
        template_id=TemplateId.PROPOSAL_WINNER,
        label="Proposta Vencedora",
        subject="Proposta Selecionada - Sistema Alicerce",
        body=(
            "<p>Olá, <b>{{supplierName}}</b>,</p>"
            "<p>Sua proposta foi <b>selecionada como vencedora</b>.</p>"
            "<ul>"
            "<li><b>Demanda:</b> {{demandTitle}}</li>"
            "<li><b>Protocolo:</b> {{protocol}}</li>"
            "<li><b>Valor adjudicado:</b> {{awardedValue}}</li>"
            "<li><b>Prazo/Condições:</b> {{conditions}}</li>"
            "</ul>"
            '<p><a href="{{portalUrl}}">Acessar o sistema</a></p>' + _SIGNATURE
        ),
        variables=[
            "supplierName", "demandTitle", "protocol", "awardedValue",
            "conditions", "portalUrl", "senderName",
        ],
    ),
    TemplateId.PROPOSAL_LOSER: EmailTemplate(
        template_id=TemplateId.PROPOSAL_LOSER,
        label="Proposta Não Selecionada",
        subject="Resultado da Cotação - Sistema Alicerce",
        body=(
            "<p>Olá, <b>{{supplierName}}</b>,</p>"
            "<p>Agradecemos sua participação. Após análise das propostas, sua cotação "
            "<b>não foi selecionada</b> para a demanda <b>{{demandTitle}}</b> ({{protocol}}).</p>"
            "<p>Contamos com sua participação em futuras oportunidades.</p>" + _SIGNATURE
        ),
        variables=["supplierName", "demandTitle", "protocol", "senderName"],
    ),
    TemplateId.WINNER_DEFINED_SECRETARIA: EmailTemplate(
        template_id=TemplateId.WINNER_DEFINED_SECRETARIA,
        label="Aviso à Secretaria (Vencedor Definido)",
        subject="Fornecedor Definido - Demanda {{protocol}}",
        body=(
            "<p>Olá, <b>{{departmentName}}</b>,</p>"
            "<p>A demanda solicitada por esta Secretaria teve <b>fornecedor definido</b>.</p>"
            "<ul>"
            "<li><b>Demanda/Objeto:</b> {{demandTitle}}</li>"
            "<li><b>Protocolo:</b> {{protocol}}</li>"
            "<li><b>Fornecedor selecionado:</b> {{supplierName}}</li>"
            "<li><b>Valor:</b> {{totalValue}}</li>"
            "</ul>"
            "<p>Solicitamos que seja providenciado o empenho.</p>" + _SIGNATURE
        ),
        variables=["departmentName", "demandTitle", "protocol", "supplierName", "totalValue", "senderName"],
    ),
}


def _substitute(text: str, variables: dict[str, str], escape: bool) -> str:
    def replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in variables:
            return match.group(0)
        value = str(variables[name])
        return html.escape(value) if escape else value

    return _PLACEHOLDER.sub(replace, text)


def render(template: EmailTemplate, variables: dict[str, str]) -> RenderedMessage:
    """
    Fill a template's placeholders

    Example:
        >>> msg = render(DEFAULT_TEMPLATES[TemplateId.PROPOSAL_LOSER], {"demandTitle": "Papel A4"})
        >>> msg.subject
        'Resultado da Cotação - Sistema Alicerce'
    """
    return RenderedMessage(
        template_id=template.template_id,
        subject=_substitute(template.subject, variables, escape=False),
        html=_substitute(template.body, variables, escape=True),
    )


class TemplateCatalog:
    """Default templates with optional per-deployment overrides"""

    def __init__(self, overrides: dict[TemplateId, EmailTemplate] | None = None) -> None:
        self._templates = {**DEFAULT_TEMPLATES, **(overrides or {})}

    def get(self, template_id: TemplateId) -> EmailTemplate:
        return self._templates[template_id]

    def render(self, template_id: TemplateId, variables: dict[str, str]) -> RenderedMessage:
        return render(self.get(template_id), variables)


# ============================================================================
# Formatting helpers
# ============================================================================


def format_brl(value: Decimal | int | float) -> str:
    """
    Format a value as Brazilian reais

    Example:
        >>> format_brl(Decimal("1234.5"))
        'R$ 1.234,50'
    """
    amount = Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    sign = "-" if amount < 0 else ""
    text = f"{abs(amount):,.2f}"  # 1,234.50
    text = text.replace(",", "_").replace(".", ",").replace("_", ".")
    return f"{sign}R$ {text}"


def format_date(value: datetime | None, missing: str = "A definir") -> str:
    """dd/mm/yyyy, or the placeholder when no date is set"""
    if value is None:
        return missing
    return value.strftime("%d/%m/%Y")
