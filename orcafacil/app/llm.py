from textwrap import dedent

from langchain_core.prompts import ChatPromptTemplate


def create_chat_llm(
    provider: str,
    model: str,
    temperature: float,
    top_p: float,
    api_key: str | None = None,
    base_url: str | None = None,
    timeout: float | None = None,
):
    provider = provider.lower()
    if provider == "openai":
        if not api_key:
            raise ValueError("OPENAI_API_KEY ausente – defina a variável de ambiente.")
        from langchain_openai import ChatOpenAI
        return ChatOpenAI(
            model=model,
            temperature=temperature,
            top_p=top_p,
            api_key=api_key,
            base_url=base_url or None,
            timeout=timeout,
            max_retries=1,
        )
    elif provider == "ollama":
        from langchain_ollama import ChatOllama
        return ChatOllama(
            model=model,
            temperature=temperature,
            top_p=top_p,
            base_url=base_url,
            format="json",
            client_kwargs={"timeout": timeout} if timeout else {},
        )
    else:
        raise ValueError(f"Unsupported MODEL_PROVIDER: {provider}")


def build_classification_prompt() -> ChatPromptTemplate:
    """
    Prompt do classificador remoto: catálogo indexado + texto do pedido -> JSON ``mappedItems``.
    Variáveis: ``catalog``, ``order_text``, ``conversion_rules``.
    """
    system = dedent(
        """\
        Você é vendedor experiente de uma loja de material elétrico.
        Sua tarefa é mapear o pedido desestruturado do cliente para o catálogo de produtos.

        CONHECIMENTO DE MARCAS E MATERIAIS:
        - Marcas abreviadas: "MG" = Margirius, "LIZ" = Tramontina Liz, "ARIA" = Tramontina Aria, "EBONY" = Margirius Preto Brilhante.
        - Cores de conduletes/eletrodutos/luvas/curvas: "CZ" = cinza, "BR" = branco, "PT" = preto, "AL" = alumínio.
        - "TOMADA" pode corresponder a "MÓDULO" ou "MOD" no catálogo quando não houver o conjunto completo.

        ATRIBUTOS PADRÃO:
        - Cabos/fios ("cabo", "fio", "flex") sem cor informada: use PRETO ("PT").

        INFERÊNCIA PELO CONTEXTO:
        - Se o primeiro item de uma categoria (tomadas/interruptores) traz a marca, os itens ambíguos seguintes da mesma categoria são da mesma marca.
        - Se o primeiro eletroduto traz cor/material, as conexões seguintes seguem a mesma cor/material.

        CONVERSÕES DE UNIDADE:
        {conversion_rules}
        Quando aplicar uma conversão, descreva-a em "conversionLog" (ex.: "2 rolos -> 200 metros").

        VARIAÇÕES DE COR NA MESMA LINHA:
        - "(vermelho/azul/preto)" ou "azul/preto": um item por cor.
        - "sendo 2 pretos e 1 azul": use as quantidades de cada cor.
        - "N de cada": N para cada cor. Sem isso, divida N igualmente se for divisível; senão, 1 de cada.
        - Em cada item de cor, "originalRequest" é o produto seguido da cor (ex.: "fio 4mm vermelho"), nunca a linha inteira.

        REGRAS:
        1. Leia o PEDIDO linha a linha. Se uma linha tiver vários itens separados por "-" ou ";", separe-os.
        2. Para CADA item devolva um objeto, NA MESMA ORDEM do pedido.
        3. Quantidade: extraia o número ("100m" -> 100, "- 1 item" -> 1). Sem número, use 1.
        4. Escolha o produto mais adequado do CATÁLOGO e informe o "catalogIndex" exatamente como listado.
        5. Sem produto com confiança razoável: "catalogIndex": -1.
        6. Toda linha do PEDIDO gera pelo menos um item. Nunca omita uma linha: sem produto, devolva-a com "catalogIndex": -1.

        Responda APENAS com JSON neste formato:
        {{
          "mappedItems": [
            {{
              "originalRequest": "produto (e cor) como pedido",
              "quantity": 1,
              "catalogIndex": 0,
              "conversionLog": null
            }}
          ]
        }}"""
    )
    human = dedent(
        """\
        CATÁLOGO (índice | descrição | preço):
        {catalog}

        PEDIDO DO CLIENTE:
        {order_text}"""
    )
    return ChatPromptTemplate.from_messages([("system", system), ("human", human)])
