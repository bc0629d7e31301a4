"""
Autenticação delegada ao Supabase Auth
Login, cadastro, logout, renovação de sessão, reset de senha e perfil do usuário
"""
from typing import Optional, Dict, Any, Callable, Tuple
import jwt

import config
from database import (
    AuthenticationError,
    DatabaseError,
    create_supabase_client,
    create_user_client,
    error_message,
)
from logging_setup import get_logger
from web_models import DEFAULT_USER_NAME, ProfileUpdate, SessionTokens, User

logger = get_logger("auth")


def claims_from_auth_user(auth_user) -> Dict[str, Any]:
    """Normaliza o usuário do Supabase Auth no mesmo formato das claims do JWT"""
    return {
        "sub": auth_user.id,
        "email": auth_user.email or "",
        "user_metadata": dict(auth_user.user_metadata or {}),
    }


def tokens_from_session(session) -> SessionTokens:
    return SessionTokens(
        access_token=session.access_token,
        refresh_token=session.refresh_token,
        expires_in=getattr(session, "expires_in", None),
    )


def load_profile(client, claims: Dict[str, Any]) -> User:
    """Monta o usuário a partir da tabela profiles, com fallback para os metadados"""
    user_id = claims["sub"]
    metadata_name = (claims.get("user_metadata") or {}).get("name")

    profile = None
    try:
        result = client.table("profiles").select("*").eq("id", user_id).execute()
        profile = result.data[0] if result.data else None
    except Exception as e:
        # Segue com os dados básicos do token
        logger.error("Erro ao carregar perfil do usuário %s: %s", user_id, error_message(e))

    name = (profile or {}).get("name") or metadata_name or DEFAULT_USER_NAME
    avatar = (profile or {}).get("avatar_url") or None

    return User(id=user_id, name=name, email=claims.get("email") or "", avatar=avatar)


def update_profile(client, user: User, profile_data: ProfileUpdate) -> User:
    """Atualiza nome/avatar na tabela profiles"""
    changes = profile_data.model_dump(exclude_unset=True)
    if not changes:
        return user

    update_dict = {}
    if "name" in changes:
        update_dict["name"] = changes["name"]
    if "avatar" in changes:
        update_dict["avatar_url"] = changes["avatar"]

    try:
        client.table("profiles").update(update_dict).eq("id", user.id).execute()
    except Exception as e:
        logger.error("Erro ao atualizar perfil: %s", error_message(e))
        raise DatabaseError(f"Erro ao atualizar perfil: {error_message(e)}")

    logger.info("Perfil atualizado: %s", user.id)
    return user.model_copy(update=changes)


class AuthService:
    """Operações de autenticação; cada chamada usa um cliente novo para não compartilhar sessão"""

    def __init__(
        self,
        client_factory: Callable[[], Any] = create_supabase_client,
        user_client_factory: Callable[[str], Any] = None,
        jwt_secret: Optional[str] = None,
    ):
        self.client_factory = client_factory
        self.user_client_factory = user_client_factory or create_user_client
        self.jwt_secret = config.SUPABASE_JWT_SECRET if jwt_secret is None else jwt_secret

    def login(self, email: str, password: str) -> Tuple[User, SessionTokens]:
        """Autentica com email e senha"""
        logger.info("Tentativa de login")
        try:
            response = self.client_factory().auth.sign_in_with_password({
                "email": email,
                "password": password,
            })
        except Exception as e:
            logger.error("Erro no login: %s", error_message(e))
            raise AuthenticationError("Email ou senha incorretos")

        if not response.user or not response.session:
            raise AuthenticationError("Email ou senha incorretos")

        tokens = tokens_from_session(response.session)
        user = load_profile(self.user_client_factory(tokens.access_token), claims_from_auth_user(response.user))
        logger.info("Login realizado: %s", user.id)
        return user, tokens

    def register(self, email: str, password: str, name: str) -> Tuple[User, Optional[SessionTokens]]:
        """Cadastra usuário; sessão é None quando o projeto exige confirmação de email"""
        logger.info("Tentativa de cadastro")
        try:
            response = self.client_factory().auth.sign_up({
                "email": email,
                "password": password,
                "options": {"data": {"name": name}},
            })
        except Exception as e:
            logger.error("Erro no cadastro: %s", error_message(e))
            raise AuthenticationError(f"Erro ao criar conta: {error_message(e)}")

        if not response.user:
            raise AuthenticationError("Erro ao criar conta")

        claims = claims_from_auth_user(response.user)
        if not response.session:
            logger.info("Cadastro realizado, aguardando confirmação de email: %s", response.user.id)
            return User(id=claims["sub"], name=name, email=claims["email"]), None

        tokens = tokens_from_session(response.session)
        client = self.user_client_factory(tokens.access_token)
        try:
            client.table("profiles").update({"name": name}).eq("id", claims["sub"]).execute()
        except Exception as e:
            # O cadastro já foi concluído
            logger.warning("Falha ao atualizar perfil após cadastro: %s", error_message(e))

        user = load_profile(client, claims)
        logger.info("Cadastro realizado: %s", user.id)
        return user, tokens

    def logout(self, access_token: str) -> None:
        try:
            self.client_factory().auth.admin.sign_out(access_token)
            logger.info("Logout concluído")
        except Exception as e:
            logger.error("Erro no logout: %s", error_message(e))

    def refresh(self, refresh_token: str) -> SessionTokens:
        """Renova a sessão usando o refresh token"""
        try:
            response = self.client_factory().auth.refresh_session(refresh_token)
        except Exception as e:
            logger.error("Erro ao renovar sessão: %s", error_message(e))
            raise AuthenticationError("Sessão expirada, faça login novamente")

        if not response.session:
            raise AuthenticationError("Sessão expirada, faça login novamente")
        return tokens_from_session(response.session)

    def send_password_reset(self, email: str) -> None:
        """Envia email de recuperação. Erros são apenas registrados para não revelar se o email existe"""
        try:
            self.client_factory().auth.reset_password_for_email(
                email, {"redirect_to": config.PASSWORD_RESET_REDIRECT_URL}
            )
            logger.info("Email de recuperação solicitado")
        except Exception as e:
            logger.error("Erro ao solicitar recuperação de senha: %s", error_message(e))

    def reset_password(self, access_token: str, refresh_token: str, new_password: str) -> None:
        """Define nova senha usando a sessão de recuperação do link enviado por email"""
        client = self.client_factory()
        try:
            client.auth.set_session(access_token, refresh_token)
        except Exception as e:
            logger.error("Sessão de recuperação inválida: %s", error_message(e))
            raise AuthenticationError("Link de recuperação inválido ou expirado")

        try:
            client.auth.update_user({"password": new_password})
        except Exception as e:
            logger.error("Erro ao atualizar senha: %s", error_message(e))
            raise DatabaseError(f"Erro ao atualizar senha: {error_message(e)}")
        logger.info("Senha redefinida")

    def verify_access_token(self, token: str) -> Dict[str, Any]:
        """Valida o access token e retorna as claims (sub, email, user_metadata)"""
        if self.jwt_secret:
            try:
                payload = jwt.decode(
                    token,
                    self.jwt_secret,
                    algorithms=["HS256"],
                    audience=config.SUPABASE_JWT_AUDIENCE,
                )
            except jwt.PyJWTError:
                raise AuthenticationError("Token inválido")
            if not payload.get("sub"):
                raise AuthenticationError("Token inválido")
            return payload

        try:
            response = self.client_factory().auth.get_user(token)
        except Exception as e:
            logger.warning("Token rejeitado pelo Supabase: %s", error_message(e))
            raise AuthenticationError("Token inválido")

        if not response or not response.user:
            raise AuthenticationError("Token inválido")
        return claims_from_auth_user(response.user)
