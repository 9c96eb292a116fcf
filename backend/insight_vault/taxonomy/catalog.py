"""
Insight Vault taxonomy catalogue: 8 pillars with all topics.

Raw data only. Topic ids are positional ("P3.07" = 7th topic of P3), so the
order of each topic list is part of the contract: append new topics at the
end, never insert or reorder, or persisted topic_id values change meaning.
"""

from __future__ import annotations

TAXONOMY_VERSION = "2.4"

PILLARS: list[dict] = [
    {
        "id": "P1",
        "name_en": "Personal Development & Effectiveness",
        "name_pt": "Desenvolvimento Pessoal & Eficácia",
        "topics": [
            "Desenvolvimento", "Desenvolvimento pessoal", "Melhoria contínua", "Lifelong learning",
            "Aprendizagem", "Conhecimento", "Proatividade", "Eficácia", "Eficiência",
            "Gestão de tempo", "Time management", "Disciplina", "Hábitos", "Excelência",
            "Organização", "Foco", "Deep work", "Resiliência", "Grit", "Persistência",
            "Perseverança", "Consistência", "Mentalidade de crescimento", "Growth Mindset",
            "Crescimento", "Performance", "Pensamento crítico", "Método científico",
        ],
    },
    {
        "id": "P2",
        "name_en": "Health, Wellbeing & Spirituality",
        "name_pt": "Saúde, Bem-estar e Espiritualidade",
        "topics": [
            "Equilíbrio", "Saúde física", "Ginástica e treinos", "Nutrição & suplementação",
            "Sono", "Saúde mental", "Terapia", "Inteligência Emocional", "Autoconhecimento",
            "Lazer", "Hobbies", "Bem-estar", "Espiritualidade & religião", "Gestão de estresse",
            "Energia", "Vitalidade", "Longevidade", "Conexão", "Meditação", "Paz interior",
            "Escuta do coração", "Transcendência", "Consciência", "Propósito", "Sentido",
            "Felicidade", "Happiness", "Gratidão", "Humanidade", "Otimismo", "Vulnerabilidade",
            "Sabedoria", "Realização",
        ],
    },
    {
        "id": "P3",
        "name_en": "Attitude & Image",
        "name_pt": "Atitude e Imagem",
        "topics": [
            "Atitude", "Postura", "Postura profissional", "Imagem", "Imagem pública",
            "Mídias sociais", "Reputação", "Vestuário", "Marca pessoal", "Identidade",
            "Autenticidade", "Inovação", "Flexibilidade", "Criatividade",
        ],
    },
    {
        "id": "P4",
        "name_en": "Relationships, Communication & Sales",
        "name_pt": "Relacionamentos, Comunicação e Vendas",
        "topics": [
            "Relacionamentos", "Amizades", "Comunidades", "Networking", "Comunicação",
            "Comunicação não violenta", "Escuta", "Escuta ativa", "Empatia", "Rapport",
            "Oratória", "Influência", "Persuasão", "Negociação", "Resolução de conflitos",
            "Vendas", "Storytelling",
        ],
    },
    {
        "id": "P5",
        "name_en": "Leadership, Strategy & Culture",
        "name_pt": "Liderança, Estratégia & Cultura",
        "topics": [
            "Liderança", "Gestão de pessoas", "Gestão de projetos", "Scrum",
            "Trabalho em equipe", "Delegação", "Cultura", "Cultura de Excelência",
            "Missão, Visão e Valores Organizacionais", "Estratégia", "Estratégia empresarial",
            "Governança", "Sistemas organizacionais", "Decisão", "Decision making",
        ],
    },
    {
        "id": "P6",
        "name_en": "Business, Money & Wealth",
        "name_pt": "Business, Money & Wealth",
        "topics": [
            "Finanças", "Dinheiro", "Patrimônio", "Ativos", "Gestão financeira",
            "Alocação de capital", "Investimentos", "Avaliação de risco", "Empreendedorismo",
        ],
    },
    {
        "id": "P7",
        "name_en": "Values, Character & Integrity",
        "name_pt": "Valores, Caráter e Integridade",
        "topics": [
            "Ética", "Justiça", "Moral", "Responsabilidade", "Seriedade", "Compromisso",
            "Honra", "Integridade", "Coragem", "Coragem Moral", "Caráter", "Virtude",
            "Compaixão", "Humildade", "Liberdade", "Princípios", "Valores", "Serviço",
        ],
    },
    {
        "id": "P8",
        "name_en": "Family & Legacy",
        "name_pt": "Família & Legado",
        "topics": [
            "Família", "Legado", "Nome", "Reputação", "Paternidade", "Presença emocional",
            "Tradições familiares", "Modelo de vida", "Educação moral", "Experiências",
            "Cartas e orientações",
        ],
    },
]
